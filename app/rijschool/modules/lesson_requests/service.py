from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.rijschool.access import get_visible, require_student, scope_query
from app.rijschool.audit import record_event
from app.rijschool.constants import DEFAULT_LESSON_DURATION, LessonRequestStatus, parse_enum
from app.rijschool.errors import Conflict, InvalidTransition, NotFound, ValidationError
from app.rijschool.modules.accounts.models import Instructor
from app.rijschool.modules.lessons.models import Lesson
from app.rijschool.modules.lessons.service import schedule_lesson
from app.rijschool.utils import clean_str, parse_datetime, parse_int

from .models import LessonRequest

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext

logger = logging.getLogger(__name__)

RESPONSE_STATUSES = {
    LessonRequestStatus.ACCEPTED,
    LessonRequestStatus.REJECTED,
    LessonRequestStatus.RESCHEDULED,
}


def create_lesson_request(s: "Session", ctx: "AuthContext", payload: dict, *, now: datetime | None = None) -> LessonRequest:
    student_id = require_student(ctx)
    instructor_id = parse_int(payload.get("instructor_id"), field="instructor_id")
    requested_date = parse_datetime(payload.get("requested_date"), field="requested_date")
    duration = parse_int(payload.get("duration_minutes"), field="duration_minutes") or DEFAULT_LESSON_DURATION

    errors = []
    if instructor_id is None:
        errors.append("Instructor is required.")
    if requested_date is None:
        errors.append("Requested date is required.")
    elif requested_date <= (now or datetime.now()):
        errors.append("Requested date must be in the future.")
    if duration <= 0:
        errors.append("Duration must be greater than zero.")
    if errors:
        raise ValidationError(errors[0], details=errors)

    if s.get(Instructor, instructor_id) is None:
        raise NotFound("Instructor not found.")

    ts = datetime.utcnow()
    req = LessonRequest(
        student_id=student_id,
        instructor_id=instructor_id,
        requested_date=requested_date,
        duration_minutes=duration,
        location=clean_str(payload.get("location")),
        notes=clean_str(payload.get("notes")),
        status=LessonRequestStatus.PENDING.value,
        created_at=ts,
        updated_at=ts,
    )
    s.add(req)
    s.flush()

    record_event(
        s,
        actor=ctx,
        action="lesson_request.create",
        entity_type="LessonRequest",
        entity_id=str(req.id),
        metadata={"instructor_id": instructor_id, "requested_date": requested_date, "duration_minutes": duration},
    )
    return req


def respond_to_request(
    s: "Session",
    ctx: "AuthContext",
    request_id: int,
    raw_status: object,
    instructor_notes: str | None = None,
) -> tuple[LessonRequest, Lesson | None]:
    """
    Accept, reject or reschedule a pending request.

    The status change is a compare-and-set on ``status = 'pending'``: when two
    responses race, the second one updates no row and gets a Conflict.
    Accepting creates the lesson in the same transaction.
    """
    target = parse_enum(LessonRequestStatus, raw_status)
    if target not in RESPONSE_STATUSES:
        raise ValidationError("Status must be one of: accepted, rejected, rescheduled")

    req = get_visible(s, LessonRequest, request_id, ctx, label="Lesson request")
    if req.status != LessonRequestStatus.PENDING.value:
        raise InvalidTransition(f"Lesson request is already {req.status}.")

    notes = clean_str(instructor_notes)
    updated = (
        s.query(LessonRequest)
        .filter(
            LessonRequest.id == req.id,
            LessonRequest.status == LessonRequestStatus.PENDING.value,
        )
        .update(
            {
                LessonRequest.status: target.value,
                LessonRequest.instructor_notes: notes,
                LessonRequest.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        logger.warning("Lesson request %s was answered concurrently", req.id)
        raise Conflict("This lesson request has already been answered.")
    s.expire(req)

    lesson = None
    if target == LessonRequestStatus.ACCEPTED:
        try:
            lesson = schedule_lesson(
                s,
                ctx,
                {
                    "student_id": req.student_id,
                    "instructor_id": req.instructor_id,
                    "scheduled_at": req.requested_date,
                    "duration_minutes": req.duration_minutes,
                    "location": req.location,
                    "notes": req.notes,
                },
                lesson_request_id=req.id,
            )
        except IntegrityError as e:
            raise Conflict("A lesson already exists for this request.") from e

    record_event(
        s,
        actor=ctx,
        action=f"lesson_request.{target.value}",
        entity_type="LessonRequest",
        entity_id=str(req.id),
        reason=notes,
        metadata={"lesson_id": lesson.id if lesson else None},
    )
    return req, lesson


def list_lesson_requests(s: "Session", ctx: "AuthContext", *, status: str | None = None) -> list[LessonRequest]:
    q = scope_query(s.query(LessonRequest), LessonRequest, ctx)
    if status:
        q = q.filter(LessonRequest.status == parse_enum(LessonRequestStatus, status).value)
    return q.order_by(LessonRequest.created_at.desc(), LessonRequest.id.desc()).all()


def pending_requests_count(s: "Session", ctx: "AuthContext") -> int:
    q = scope_query(s.query(func.count(LessonRequest.id)), LessonRequest, ctx)
    return int(q.filter(LessonRequest.status == LessonRequestStatus.PENDING.value).scalar() or 0)
