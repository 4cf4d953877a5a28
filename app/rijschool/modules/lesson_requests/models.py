from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.rijschool.models import Base
from app.rijschool.utils import iso

if TYPE_CHECKING:
    from app.rijschool.modules.accounts.models import Instructor, Student


class LessonRequest(Base):
    __tablename__ = "lesson_requests"
    __table_args__ = (
        Index("idx_lesson_requests_instructor_status", "instructor_id", "status"),
        Index("idx_lesson_requests_student", "student_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    instructor_id: Mapped[int] = mapped_column(ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False)

    requested_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    instructor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    instructor: Mapped["Instructor"] = relationship("Instructor", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "student_name": self.student.full_name if self.student else None,
            "instructor_id": self.instructor_id,
            "instructor_name": self.instructor.full_name if self.instructor else None,
            "requested_date": iso(self.requested_date),
            "duration_minutes": self.duration_minutes,
            "location": self.location,
            "notes": self.notes,
            "status": self.status,
            "instructor_notes": self.instructor_notes,
            "created_at": iso(self.created_at),
        }
