"""
Lessons and the lessons-remaining ledger.

A student's balance is derived from two sources: lessons bought through
approved payment proofs, and lessons that are scheduled or completed.
``students.lessons_remaining`` caches that figure; every write that can move
either side calls ``refresh_lessons_remaining`` in the same transaction.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.rijschool.access import get_visible, scope_query
from app.rijschool.audit import record_event
from app.rijschool.constants import (
    CREDIT_CONSUMING_LESSON_STATUSES,
    DEFAULT_LESSON_DURATION,
    LessonStatus,
    PaymentStatus,
    parse_enum,
)
from app.rijschool.errors import Conflict, InvalidTransition, NotFound, PermissionDenied, ValidationError
from app.rijschool.modules.accounts.models import Instructor, Student
from app.rijschool.modules.availability.service import is_instructor_available, lesson_window
from app.rijschool.modules.cars.models import Car
from app.rijschool.modules.payments.models import PaymentProof
from app.rijschool.utils import clean_str, parse_datetime, parse_int

from .models import Lesson

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext

logger = logging.getLogger(__name__)


STATUS_TRANSITIONS = {
    LessonStatus.SCHEDULED: {LessonStatus.COMPLETED, LessonStatus.CANCELLED, LessonStatus.NO_SHOW},
    LessonStatus.COMPLETED: set(),
    LessonStatus.CANCELLED: set(),
    LessonStatus.NO_SHOW: set(),
}


# ---------- Ledger ----------


def compute_lessons_remaining(s: "Session", student_id: int) -> tuple[int, int, int]:
    """Return (purchased, used, remaining) for one student."""
    purchased = (
        s.query(func.coalesce(func.sum(PaymentProof.lessons_count), 0))
        .filter(
            PaymentProof.student_id == student_id,
            PaymentProof.status == PaymentStatus.APPROVED.value,
        )
        .scalar()
    )
    used = (
        s.query(func.count(Lesson.id))
        .filter(
            Lesson.student_id == student_id,
            Lesson.status.in_([st.value for st in CREDIT_CONSUMING_LESSON_STATUSES]),
        )
        .scalar()
    )
    purchased = int(purchased or 0)
    used = int(used or 0)
    return purchased, used, max(0, purchased - used)


def _lock_student(s: "Session", student_id: int) -> Student:
    student = (
        s.query(Student)
        .filter(Student.id == student_id)
        .with_for_update()
        .one_or_none()
    )
    if student is None:
        raise NotFound("Student not found.")
    return student


def reserve_lesson_credit(s: "Session", student_id: int) -> int:
    """
    Lock the student row and make sure one more lesson fits the purchased
    balance. Returns the remaining count before the new lesson is added.
    """
    _lock_student(s, student_id)
    _, _, remaining = compute_lessons_remaining(s, student_id)
    if remaining <= 0:
        raise Conflict(
            "The student has no lessons remaining.",
            details=["Approve a payment proof for a lesson package first."],
        )
    return remaining


def refresh_lessons_remaining(s: "Session", student_id: int) -> int:
    """
    Recompute and store ``lessons_remaining`` for a student.
    Runs in the caller's transaction; the student row is locked first.
    """
    s.flush()
    student = _lock_student(s, student_id)
    _, _, remaining = compute_lessons_remaining(s, student_id)
    if student.lessons_remaining != remaining:
        logger.debug("lessons_remaining student=%s %s -> %s", student_id, student.lessons_remaining, remaining)
        student.lessons_remaining = remaining
        student.updated_at = datetime.utcnow()
    return remaining


def lesson_balance(s: "Session", student: Student) -> dict:
    purchased, used, remaining = compute_lessons_remaining(s, student.id)
    return {
        "student_id": student.id,
        "purchased": purchased,
        "used": used,
        "remaining": remaining,
        "stored_remaining": student.lessons_remaining,
    }


# ---------- Lessons ----------


def can_transition_to(lesson: Lesson, new_status: LessonStatus) -> tuple[bool, list[str]]:
    """Check if lesson can transition to new_status."""
    errors = []
    try:
        current = LessonStatus(lesson.status)
    except ValueError:
        errors.append(f"Current status '{lesson.status}' is invalid")
        return False, errors
    if new_status not in STATUS_TRANSITIONS[current]:
        errors.append(f"Cannot transition from '{current.value}' to '{new_status.value}'")
        return False, errors
    return True, []


def _resolve_instructor_id(s: "Session", ctx: "AuthContext", raw: object) -> int:
    if ctx.is_admin:
        instructor_id = parse_int(raw, field="instructor_id")
        if instructor_id is None:
            raise ValidationError("Instructor is required.")
        if s.get(Instructor, instructor_id) is None:
            raise NotFound("Instructor not found.")
        return instructor_id
    if ctx.instructor_id is None:
        raise PermissionDenied("Only instructors and admins can schedule lessons.")
    requested = parse_int(raw, field="instructor_id")
    if requested is not None and requested != ctx.instructor_id:
        raise PermissionDenied("Instructors can only schedule their own lessons.")
    return ctx.instructor_id


def ensure_slot_available(
    s: "Session",
    instructor_id: int,
    scheduled_at: datetime,
    duration_minutes: int,
    *,
    exclude_lesson_id: int | None = None,
) -> None:
    day, start, end = lesson_window(scheduled_at, duration_minutes)
    if not is_instructor_available(s, instructor_id, day, start, end, exclude_lesson_id=exclude_lesson_id):
        raise Conflict("The instructor is not available at this time.")


def schedule_lesson(
    s: "Session",
    ctx: "AuthContext",
    payload: dict,
    *,
    lesson_request_id: int | None = None,
) -> Lesson:
    student_id = parse_int(payload.get("student_id"), field="student_id")
    scheduled_at = parse_datetime(payload.get("scheduled_at"), field="scheduled_at")
    duration = parse_int(payload.get("duration_minutes"), field="duration_minutes") or DEFAULT_LESSON_DURATION
    errors = []
    if student_id is None:
        errors.append("Student is required.")
    if scheduled_at is None:
        errors.append("Scheduled time is required.")
    if duration <= 0:
        errors.append("Duration must be greater than zero.")
    if errors:
        raise ValidationError(errors[0], details=errors)

    instructor_id = _resolve_instructor_id(s, ctx, payload.get("instructor_id"))

    car_id = parse_int(payload.get("car_id"), field="car_id")
    if car_id is not None:
        car = s.get(Car, car_id)
        if car is None:
            raise NotFound("Car not found.")
        if not car.is_available:
            raise Conflict(f"Car {car.license_plate} is not available.")

    ensure_slot_available(s, instructor_id, scheduled_at, duration)
    reserve_lesson_credit(s, student_id)

    now = datetime.utcnow()
    lesson = Lesson(
        student_id=student_id,
        instructor_id=instructor_id,
        car_id=car_id,
        scheduled_at=scheduled_at,
        duration_minutes=duration,
        status=LessonStatus.SCHEDULED.value,
        location=clean_str(payload.get("location")),
        notes=clean_str(payload.get("notes")),
        lesson_request_id=lesson_request_id,
        created_at=now,
        updated_at=now,
    )
    s.add(lesson)
    s.flush()
    remaining = refresh_lessons_remaining(s, student_id)

    record_event(
        s,
        actor=ctx,
        action="lesson.schedule",
        entity_type="Lesson",
        entity_id=str(lesson.id),
        metadata={
            "student_id": student_id,
            "instructor_id": instructor_id,
            "scheduled_at": scheduled_at,
            "duration_minutes": duration,
            "lessons_remaining": remaining,
        },
    )
    if remaining == 0:
        logger.info("Student %s has used all purchased lessons (lesson %s)", student_id, lesson.id)
    return lesson


def update_lesson_status(s: "Session", ctx: "AuthContext", lesson: Lesson, raw_status: object, notes=None) -> Lesson:
    new_status = parse_enum(LessonStatus, raw_status)
    ok, errors = can_transition_to(lesson, new_status)
    if not ok:
        raise InvalidTransition(errors[0], details=errors)

    old_status = lesson.status
    lesson.status = new_status.value
    if notes is not None:
        lesson.notes = clean_str(notes)
    lesson.updated_at = datetime.utcnow()
    remaining = refresh_lessons_remaining(s, lesson.student_id)

    record_event(
        s,
        actor=ctx,
        action="lesson.status_change",
        entity_type="Lesson",
        entity_id=str(lesson.id),
        metadata={"from": old_status, "to": new_status.value, "lessons_remaining": remaining},
    )
    return lesson


def delete_lesson(s: "Session", ctx: "AuthContext", lesson: Lesson) -> None:
    student_id = lesson.student_id
    record_event(
        s,
        actor=ctx,
        action="lesson.delete",
        entity_type="Lesson",
        entity_id=str(lesson.id),
        metadata={"student_id": student_id, "scheduled_at": lesson.scheduled_at, "status": lesson.status},
    )
    s.delete(lesson)
    refresh_lessons_remaining(s, student_id)


def get_lesson(s: "Session", ctx: "AuthContext", lesson_id: int) -> Lesson:
    return get_visible(s, Lesson, lesson_id, ctx, label="Lesson")


def list_lessons(
    s: "Session",
    ctx: "AuthContext",
    *,
    status: str | None = None,
    day: date | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Lesson]:
    q = scope_query(s.query(Lesson), Lesson, ctx)
    if status:
        q = q.filter(Lesson.status == parse_enum(LessonStatus, status).value)
    if day is not None:
        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)
    if start is not None:
        q = q.filter(Lesson.scheduled_at >= start)
    if end is not None:
        q = q.filter(Lesson.scheduled_at < end)
    return q.order_by(Lesson.scheduled_at.asc()).all()


def lessons_today(s: "Session", ctx: "AuthContext", *, today: date | None = None) -> list[Lesson]:
    """Today's scheduled or completed lessons for the caller."""
    day_start = datetime.combine(today or date.today(), time.min)
    return (
        scope_query(s.query(Lesson), Lesson, ctx)
        .filter(
            Lesson.scheduled_at >= day_start,
            Lesson.scheduled_at < day_start + timedelta(days=1),
            Lesson.status.in_([LessonStatus.SCHEDULED.value, LessonStatus.COMPLETED.value]),
        )
        .order_by(Lesson.scheduled_at.asc())
        .all()
    )


def upcoming_lessons(s: "Session", ctx: "AuthContext", *, limit: int = 5, now: datetime | None = None) -> list[Lesson]:
    return (
        scope_query(s.query(Lesson), Lesson, ctx)
        .filter(
            Lesson.scheduled_at >= (now or datetime.now()),
            Lesson.status == LessonStatus.SCHEDULED.value,
        )
        .order_by(Lesson.scheduled_at.asc())
        .limit(limit)
        .all()
    )
