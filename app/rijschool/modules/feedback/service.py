from __future__ import annotations

from typing import TYPE_CHECKING

from app.rijschool.access import get_visible, require_instructor
from app.rijschool.audit import record_event
from app.rijschool.constants import (
    FEEDBACK_RATING_FIELDS,
    FEEDBACK_RATING_MAX,
    FEEDBACK_RATING_MIN,
    LessonStatus,
)
from app.rijschool.errors import Conflict, PermissionDenied, ValidationError
from app.rijschool.modules.lessons.models import Lesson
from app.rijschool.utils import clean_str, parse_int

from .models import LessonFeedback

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext


def validate_ratings(payload: dict) -> dict[str, int | None]:
    ratings = {}
    for field in FEEDBACK_RATING_FIELDS:
        value = parse_int(payload.get(field), field=field)
        if value is not None and not (FEEDBACK_RATING_MIN <= value <= FEEDBACK_RATING_MAX):
            raise ValidationError(f"{field} must be between {FEEDBACK_RATING_MIN} and {FEEDBACK_RATING_MAX}.")
        ratings[field] = value
    return ratings


def give_feedback(s: "Session", ctx: "AuthContext", lesson_id: int, payload: dict) -> LessonFeedback:
    """Instructor feedback on a completed lesson they taught; one per lesson."""
    instructor_id = require_instructor(ctx)
    lesson = get_visible(s, Lesson, lesson_id, ctx, label="Lesson")
    if lesson.instructor_id != instructor_id:
        raise PermissionDenied("You can only give feedback on your own lessons.")
    if lesson.status != LessonStatus.COMPLETED.value:
        raise ValidationError("Feedback can only be given on completed lessons.")
    if s.query(LessonFeedback.id).filter(LessonFeedback.lesson_id == lesson.id).first():
        raise Conflict("Feedback for this lesson already exists.")

    feedback = LessonFeedback(
        lesson_id=lesson.id,
        instructor_id=instructor_id,
        comments=clean_str(payload.get("comments")),
        recommendations=clean_str(payload.get("recommendations")),
        **validate_ratings(payload),
    )
    s.add(feedback)
    s.flush()

    record_event(
        s,
        actor=ctx,
        action="lesson_feedback.create",
        entity_type="LessonFeedback",
        entity_id=str(feedback.id),
        metadata={"lesson_id": lesson.id, "student_id": lesson.student_id},
    )
    return feedback


def list_feedback(s: "Session", ctx: "AuthContext") -> list[LessonFeedback]:
    q = s.query(LessonFeedback).join(Lesson, LessonFeedback.lesson_id == Lesson.id)
    if ctx.is_admin:
        pass
    elif ctx.is_instructor and ctx.instructor_id is not None:
        q = q.filter(LessonFeedback.instructor_id == ctx.instructor_id)
    elif ctx.is_student and ctx.student_id is not None:
        q = q.filter(Lesson.student_id == ctx.student_id)
    else:
        return []
    return q.order_by(LessonFeedback.created_at.desc(), LessonFeedback.id.desc()).all()
