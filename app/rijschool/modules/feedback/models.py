from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.rijschool.constants import FEEDBACK_RATING_FIELDS
from app.rijschool.models import Base
from app.rijschool.utils import iso

if TYPE_CHECKING:
    from app.rijschool.modules.accounts.models import Instructor
    from app.rijschool.modules.lessons.models import Lesson


class LessonFeedback(Base):
    __tablename__ = "lesson_feedback"
    __table_args__ = tuple(
        CheckConstraint(f"{f} IS NULL OR ({f} >= 1 AND {f} <= 5)", name=f"ck_lesson_feedback_{f}")
        for f in FEEDBACK_RATING_FIELDS
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lesson_id: Mapped[int] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, unique=True)
    instructor_id: Mapped[int] = mapped_column(ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False)

    driving_skills: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parking_skills: Mapped[int | None] = mapped_column(Integer, nullable=True)
    traffic_awareness: Mapped[int | None] = mapped_column(Integer, nullable=True)
    overall_progress: Mapped[int | None] = mapped_column(Integer, nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendations: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    lesson: Mapped["Lesson"] = relationship("Lesson", lazy="selectin")
    instructor: Mapped["Instructor"] = relationship("Instructor", lazy="selectin")

    @property
    def student_id(self) -> int | None:
        return self.lesson.student_id if self.lesson else None

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "lesson_id": self.lesson_id,
            "instructor_id": self.instructor_id,
            "instructor_name": self.instructor.full_name if self.instructor else None,
            "student_id": self.student_id,
            "lesson_date": iso(self.lesson.scheduled_at) if self.lesson else None,
            "comments": self.comments,
            "recommendations": self.recommendations,
            "created_at": iso(self.created_at),
        }
        for field in FEEDBACK_RATING_FIELDS:
            out[field] = getattr(self, field)
        return out
