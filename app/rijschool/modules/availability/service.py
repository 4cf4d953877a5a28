from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.rijschool.access import can_see, require_instructor, scope_query
from app.rijschool.audit import record_event
from app.rijschool.constants import LessonStatus
from app.rijschool.errors import NotFound, PermissionDenied, ValidationError
from app.rijschool.modules.accounts.models import Instructor
from app.rijschool.modules.lessons.models import Lesson
from app.rijschool.utils import clean_str, parse_bool, parse_date, parse_int, parse_time

from .models import AvailabilityEntry

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext

logger = logging.getLogger(__name__)


def validate_entry_payload(payload: dict) -> list[str]:
    """Validate availability entry payload. Returns list of errors."""
    errors = []
    day = parse_date(payload.get("date"), field="date")
    start = parse_time(payload.get("start_time"), field="start_time")
    end = parse_time(payload.get("end_time"), field="end_time")
    if not day or not start or not end:
        errors.append("Date, start time and end time are required.")
    elif end <= start:
        errors.append("End time must be after start time.")
    return errors


def create_entry(s: "Session", ctx: "AuthContext", payload: dict) -> AvailabilityEntry:
    """
    Add an entry to an instructor's agenda. Instructors write their own;
    admins may pass ``instructor_id``.
    """
    errors = validate_entry_payload(payload)
    if errors:
        raise ValidationError(errors[0], details=errors)

    if ctx.is_admin and payload.get("instructor_id") not in (None, ""):
        instructor_id = parse_int(payload.get("instructor_id"), field="instructor_id")
        if s.get(Instructor, instructor_id) is None:
            raise NotFound("Instructor not found.")
    else:
        instructor_id = require_instructor(ctx)

    entry = AvailabilityEntry(
        instructor_id=instructor_id,
        date=parse_date(payload.get("date"), field="date"),
        start_time=parse_time(payload.get("start_time"), field="start_time"),
        end_time=parse_time(payload.get("end_time"), field="end_time"),
        is_available=parse_bool(payload.get("is_available"), default=False),
        reason=clean_str(payload.get("reason")),
    )
    s.add(entry)
    s.flush()

    record_event(
        s,
        actor=ctx,
        action="availability.create",
        entity_type="AvailabilityEntry",
        entity_id=str(entry.id),
        metadata={
            "instructor_id": instructor_id,
            "date": entry.date,
            "start_time": entry.start_time,
            "end_time": entry.end_time,
            "is_available": entry.is_available,
        },
    )
    return entry


def delete_entry(s: "Session", ctx: "AuthContext", entry_id: int) -> None:
    entry = s.get(AvailabilityEntry, entry_id)
    if entry is None:
        raise NotFound("Availability entry not found.")
    if not can_see(entry, ctx):
        raise PermissionDenied("You can only remove your own availability.")
    record_event(
        s,
        actor=ctx,
        action="availability.delete",
        entity_type="AvailabilityEntry",
        entity_id=str(entry.id),
        metadata={"instructor_id": entry.instructor_id, "date": entry.date},
    )
    s.delete(entry)


def list_entries(
    s: "Session",
    ctx: "AuthContext",
    *,
    instructor_id: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[AvailabilityEntry]:
    """Entries from ``from_date`` (default today), ordered by date then start time."""
    q = s.query(AvailabilityEntry)
    if ctx.is_instructor or ctx.is_admin:
        q = scope_query(q, AvailabilityEntry, ctx)
    # Students see every instructor's agenda so they can pick a free slot.
    if instructor_id is not None:
        q = q.filter(AvailabilityEntry.instructor_id == instructor_id)
    q = q.filter(AvailabilityEntry.date >= (from_date or date.today()))
    if to_date is not None:
        q = q.filter(AvailabilityEntry.date <= to_date)
    return q.order_by(AvailabilityEntry.date.asc(), AvailabilityEntry.start_time.asc()).all()


def group_by_date(entries: list[AvailabilityEntry]) -> dict[str, list[AvailabilityEntry]]:
    grouped: dict[str, list[AvailabilityEntry]] = {}
    for entry in entries:
        grouped.setdefault(entry.date.isoformat(), []).append(entry)
    return grouped


def _lesson_overlaps(lesson: Lesson, start: datetime, end: datetime) -> bool:
    return lesson.scheduled_at < end and start < lesson.ends_at


def is_instructor_available(
    s: "Session",
    instructor_id: int,
    day: date,
    start: time,
    end: time,
    *,
    exclude_lesson_id: int | None = None,
) -> bool:
    """
    True when nothing in the instructor's agenda stands in the way of a lesson
    on ``day`` from ``start`` to ``end``:

    - no blocked availability entry overlaps the window
    - no scheduled lesson overlaps the window
    - fewer than ``max_lessons_per_day`` lessons are scheduled that day
    """
    instructor = s.get(Instructor, instructor_id)
    if instructor is None:
        raise NotFound("Instructor not found.")

    blocked = (
        s.query(AvailabilityEntry)
        .filter(
            AvailabilityEntry.instructor_id == instructor_id,
            AvailabilityEntry.date == day,
            AvailabilityEntry.is_available.is_(False),
        )
        .all()
    )
    if any(entry.overlaps(start, end) for entry in blocked):
        return False

    day_start = datetime.combine(day, time.min)
    q = s.query(Lesson).filter(
        Lesson.instructor_id == instructor_id,
        Lesson.status == LessonStatus.SCHEDULED.value,
    )
    if exclude_lesson_id is not None:
        q = q.filter(Lesson.id != exclude_lesson_id)
    # Lessons from the evening before can run past midnight into this day.
    longest = q.with_entities(func.max(Lesson.duration_minutes)).scalar() or 0
    lessons = q.filter(
        Lesson.scheduled_at >= day_start - timedelta(minutes=longest),
        Lesson.scheduled_at < day_start + timedelta(days=1),
    ).all()

    window_start = datetime.combine(day, start)
    window_end = datetime.combine(day, end)
    if any(_lesson_overlaps(lesson, window_start, window_end) for lesson in lessons):
        return False

    booked = [lesson for lesson in lessons if lesson.scheduled_at >= day_start]
    if len(booked) >= instructor.max_lessons_per_day:
        logger.info("Instructor %s is fully booked on %s", instructor_id, day)
        return False
    return True


def lesson_window(scheduled_at: datetime, duration_minutes: int) -> tuple[date, time, time]:
    """Day, start and end time of a lesson; a lesson running past midnight is cut at 23:59."""
    end_at = scheduled_at + timedelta(minutes=duration_minutes)
    end = end_at.time() if end_at.date() == scheduled_at.date() else time(23, 59, 59)
    return scheduled_at.date(), scheduled_at.time(), end
