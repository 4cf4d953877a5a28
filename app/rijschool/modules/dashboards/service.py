from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.rijschool.constants import LessonRequestStatus, LessonStatus, PaymentStatus
from app.rijschool.modules.accounts.models import Instructor, Student
from app.rijschool.modules.cars.models import Car
from app.rijschool.modules.lesson_requests.models import LessonRequest
from app.rijschool.modules.lesson_requests.service import pending_requests_count
from app.rijschool.modules.lessons.models import Lesson
from app.rijschool.modules.lessons.service import compute_lessons_remaining, lessons_today, upcoming_lessons
from app.rijschool.modules.payments.models import PaymentProof
from app.rijschool.modules.payments.service import counts_by_status, pending_count
from app.rijschool.utils import money

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext


def _count(s: "Session", column, *criteria) -> int:
    return int(s.query(func.count(column)).filter(*criteria).scalar() or 0)


def admin_stats(s: "Session") -> dict:
    revenue = (
        s.query(func.coalesce(func.sum(PaymentProof.amount), 0))
        .filter(PaymentProof.status == PaymentStatus.APPROVED.value)
        .scalar()
    )
    return {
        "total_lessons": _count(s, Lesson.id),
        "completed_lessons": _count(s, Lesson.id, Lesson.status == LessonStatus.COMPLETED.value),
        "students": _count(s, Student.id),
        "instructors": _count(s, Instructor.id),
        "cars_available": _count(s, Car.id, Car.is_available.is_(True)),
        "payment_proofs_to_handle": pending_count(s),
        "revenue": money(revenue) or 0.0,
    }


def instructor_stats(s: "Session", ctx: "AuthContext", *, today: date | None = None) -> dict:
    today_lessons = lessons_today(s, ctx, today=today)
    distinct_students = (
        s.query(func.count(func.distinct(Lesson.student_id)))
        .filter(Lesson.instructor_id == ctx.instructor_id)
        .scalar()
    )
    return {
        "lessons_today": len(today_lessons),
        "today": [lesson.to_dict() for lesson in today_lessons],
        "students": int(distinct_students or 0),
        "pending_requests": pending_requests_count(s, ctx),
    }


def student_stats(s: "Session", ctx: "AuthContext", *, now: datetime | None = None) -> dict:
    purchased, used, remaining = compute_lessons_remaining(s, ctx.student_id)
    upcoming = upcoming_lessons(s, ctx, limit=5, now=now)
    open_requests = _count(
        s,
        LessonRequest.id,
        LessonRequest.student_id == ctx.student_id,
        LessonRequest.status.in_([LessonRequestStatus.PENDING.value, LessonRequestStatus.RESCHEDULED.value]),
    )
    return {
        "lessons_remaining": remaining,
        "lessons_purchased": purchased,
        "lessons_used": used,
        "upcoming_lessons": [lesson.to_dict() for lesson in upcoming],
        "open_requests": open_requests,
        "payment_proofs": counts_by_status(s, ctx),
    }


def dashboard_for(s: "Session", ctx: "AuthContext") -> dict:
    if ctx.is_admin:
        stats = admin_stats(s)
    elif ctx.is_instructor and ctx.instructor_id is not None:
        stats = instructor_stats(s, ctx)
    elif ctx.is_student and ctx.student_id is not None:
        stats = student_stats(s, ctx)
    else:
        stats = {}
    return {"role": ctx.role, "stats": stats}
