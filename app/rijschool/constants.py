"""
Central constants for the driving-school application.

Statuses are closed enums. Parse incoming strings with ``parse_enum`` so an
unknown value is reported instead of being silently promoted.
"""
from __future__ import annotations

from enum import Enum
from typing import TypeVar


class RoleKey(str, Enum):
    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    INVOICE_SENT = "invoice_sent"
    PAYMENT_RECEIVED = "payment_received"
    APPROVED = "approved"
    REJECTED = "rejected"


class LessonStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class LessonRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    RESCHEDULED = "rescheduled"


# Lessons that consume a purchased lesson credit.
CREDIT_CONSUMING_LESSON_STATUSES = frozenset({LessonStatus.COMPLETED, LessonStatus.SCHEDULED})

DEFAULT_LESSON_DURATION = 60
DEFAULT_LICENSE_TYPE = "B"
DEFAULT_MAX_LESSONS_PER_DAY = 8
MIN_PASSWORD_LENGTH = 6

FEEDBACK_RATING_FIELDS = ("driving_skills", "parking_skills", "traffic_awareness", "overall_progress")
FEEDBACK_RATING_MIN = 1
FEEDBACK_RATING_MAX = 5

E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], raw: object, *, field: str = "status") -> E:
    """Parse a raw value into ``enum_cls``; raises ValidationError for anything outside the enum."""
    from app.rijschool.errors import ValidationError

    if isinstance(raw, enum_cls):
        return raw
    value = (str(raw) if raw is not None else "").strip().lower()
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)  # type: ignore[attr-defined]
        raise ValidationError(f"Invalid {field} '{value}'. Must be one of: {allowed}") from None
