"""
Week view arithmetic.

The grid runs 08:00-21:00 (one row per hour, 60 px each) and weeks start on
Monday. Events are positioned by their offset from 08:00 in minutes, which is
also their offset in pixels.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING

from app.rijschool.access import scope_query
from app.rijschool.constants import LessonRequestStatus
from app.rijschool.modules.availability.models import AvailabilityEntry
from app.rijschool.modules.lesson_requests.models import LessonRequest
from app.rijschool.modules.lessons.models import Lesson

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext

FIRST_HOUR = 8
LAST_HOUR = 21
HOURS = list(range(FIRST_HOUR, LAST_HOUR + 1))
HOUR_HEIGHT_PX = 60
MIN_EVENT_HEIGHT_PX = 30
INSTRUCTOR_HORIZON = timedelta(weeks=2)

OPEN_REQUEST_STATUSES = (LessonRequestStatus.PENDING.value, LessonRequestStatus.RESCHEDULED.value)


def week_start(anchor: date) -> date:
    return anchor - timedelta(days=anchor.weekday())


def week_days(anchor: date) -> list[date]:
    first = week_start(anchor)
    return [first + timedelta(days=i) for i in range(7)]


def event_position(start: datetime | time) -> int:
    t = start.time() if isinstance(start, datetime) else start
    return (t.hour - FIRST_HOUR) * HOUR_HEIGHT_PX + t.minute


def event_height(start: datetime | time, end: datetime | time | None) -> int:
    if end is None:
        return MIN_EVENT_HEIGHT_PX
    if isinstance(start, time):
        start = datetime.combine(date.min, start)
    if isinstance(end, time):
        end = datetime.combine(start.date(), end)
    hours = (end - start).total_seconds() / 3600
    return max(MIN_EVENT_HEIGHT_PX, int(round(hours * HOUR_HEIGHT_PX)))


def _event(kind: str, obj_id: int, title: str, start: datetime, end: datetime | None, **extra) -> dict:
    return {
        "type": kind,
        "id": obj_id,
        "title": title,
        "start": start.isoformat(),
        "end": end.isoformat() if end else None,
        "top": event_position(start),
        "height": event_height(start, end),
        **extra,
    }


def _lesson_title(lesson: Lesson, ctx: "AuthContext") -> str:
    if ctx.is_student:
        return f"Lesson with {lesson.instructor.full_name}" if lesson.instructor else "Lesson"
    return f"Lesson: {lesson.student.full_name}" if lesson.student else "Lesson"


def build_week(s: "Session", ctx: "AuthContext", anchor: date, *, now: datetime | None = None) -> dict:
    """
    Lessons, open lesson requests and blocked agenda entries of the week around
    ``anchor``, bucketed per day. Instructors only get events up to two weeks ahead.
    """
    days = week_days(anchor)
    range_start = datetime.combine(days[0], time.min)
    range_end = datetime.combine(days[-1] + timedelta(days=1), time.min)
    if ctx.is_instructor:
        range_end = min(range_end, (now or datetime.now()) + INSTRUCTOR_HORIZON)

    buckets: dict[date, list[dict]] = {d: [] for d in days}

    lessons = (
        scope_query(s.query(Lesson), Lesson, ctx)
        .filter(Lesson.scheduled_at >= range_start, Lesson.scheduled_at < range_end)
        .order_by(Lesson.scheduled_at.asc())
        .all()
    )
    for lesson in lessons:
        buckets[lesson.scheduled_at.date()].append(
            _event(
                "lesson",
                lesson.id,
                _lesson_title(lesson, ctx),
                lesson.scheduled_at,
                lesson.ends_at,
                status=lesson.status,
                location=lesson.location,
            )
        )

    requests = (
        scope_query(s.query(LessonRequest), LessonRequest, ctx)
        .filter(
            LessonRequest.requested_date >= range_start,
            LessonRequest.requested_date < range_end,
            LessonRequest.status.in_(OPEN_REQUEST_STATUSES),
        )
        .order_by(LessonRequest.requested_date.asc())
        .all()
    )
    for req in requests:
        end = req.requested_date + timedelta(minutes=req.duration_minutes or 0)
        buckets[req.requested_date.date()].append(
            _event("request", req.id, "Lesson request", req.requested_date, end, status=req.status)
        )

    if ctx.is_admin or ctx.is_instructor:
        entries = (
            scope_query(s.query(AvailabilityEntry), AvailabilityEntry, ctx)
            .filter(
                AvailabilityEntry.date >= days[0],
                AvailabilityEntry.date <= days[-1],
                AvailabilityEntry.is_available.is_(False),
            )
            .all()
        )
        for entry in entries:
            start = datetime.combine(entry.date, entry.start_time)
            if start >= range_end:
                continue
            buckets[entry.date].append(
                _event(
                    "blocked",
                    entry.id,
                    entry.reason or "Unavailable",
                    start,
                    datetime.combine(entry.date, entry.end_time),
                    instructor_id=entry.instructor_id,
                )
            )

    return {
        "week_start": days[0].isoformat(),
        "hours": HOURS,
        "hour_height": HOUR_HEIGHT_PX,
        "days": [
            {"date": d.isoformat(), "events": sorted(buckets[d], key=lambda e: e["start"])}
            for d in days
        ],
    }
