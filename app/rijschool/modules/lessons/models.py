from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.rijschool.models import Base
from app.rijschool.utils import iso

if TYPE_CHECKING:
    from app.rijschool.modules.accounts.models import Instructor, Student
    from app.rijschool.modules.cars.models import Car


class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_lessons_duration"),
        Index("idx_lessons_student_scheduled", "student_id", "scheduled_at"),
        Index("idx_lessons_instructor_scheduled", "instructor_id", "scheduled_at"),
        Index("idx_lessons_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    instructor_id: Mapped[int] = mapped_column(ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False)
    car_id: Mapped[int | None] = mapped_column(ForeignKey("cars.id", ondelete="SET NULL"), nullable=True)
    # Set when the lesson came from an accepted request; one lesson per request.
    lesson_request_id: Mapped[int | None] = mapped_column(
        ForeignKey("lesson_requests.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="scheduled")
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    instructor: Mapped["Instructor"] = relationship("Instructor", lazy="selectin")
    car: Mapped["Car | None"] = relationship("Car", lazy="selectin")

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "student_name": self.student.full_name if self.student else None,
            "instructor_id": self.instructor_id,
            "instructor_name": self.instructor.full_name if self.instructor else None,
            "car_id": self.car_id,
            "car_license_plate": self.car.license_plate if self.car else None,
            "lesson_request_id": self.lesson_request_id,
            "scheduled_at": iso(self.scheduled_at),
            "ends_at": iso(self.ends_at),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "location": self.location,
            "notes": self.notes,
        }
