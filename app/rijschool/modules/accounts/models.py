from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.rijschool.models import Base

if TYPE_CHECKING:
    from app.rijschool.models import Profile


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        Index("idx_students_license_type", "license_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True)

    license_type: Mapped[str] = mapped_column(String(16), nullable=False, default="B")  # A, B, BE, C, ...
    theory_exam_passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Maintained by lessons.service.refresh_lessons_remaining; never written directly.
    lessons_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    profile: Mapped["Profile"] = relationship("Profile", back_populates="student", lazy="selectin")

    @property
    def full_name(self) -> str | None:
        return self.profile.full_name if self.profile else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "license_type": self.license_type,
            "theory_exam_passed": self.theory_exam_passed,
            "lessons_remaining": self.lessons_remaining,
            "profile": self.profile.to_dict() if self.profile else None,
        }


class Instructor(Base):
    __tablename__ = "instructors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    profile_id: Mapped[int] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True)

    specializations: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)  # e.g. ["B", "automatic"]
    max_lessons_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    available_hours: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # {"mon": ["09:00", "17:00"], ...}

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    profile: Mapped["Profile"] = relationship("Profile", back_populates="instructor", lazy="selectin")

    @property
    def full_name(self) -> str | None:
        return self.profile.full_name if self.profile else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "specializations": list(self.specializations or []),
            "max_lessons_per_day": self.max_lessons_per_day,
            "available_hours": self.available_hours,
            "profile": self.profile.to_dict() if self.profile else None,
        }
