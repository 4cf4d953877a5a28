from __future__ import annotations

import datetime as dt
from datetime import datetime, time
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.rijschool.models import Base
from app.rijschool.utils import iso

if TYPE_CHECKING:
    from app.rijschool.modules.accounts.models import Instructor


class AvailabilityEntry(Base):
    """
    A window on one day in an instructor's agenda.
    ``is_available=False`` blocks the window (holiday, exam, sick leave).
    """

    __tablename__ = "availability_entries"
    __table_args__ = (
        Index("idx_availability_instructor_date", "instructor_id", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    instructor_id: Mapped[int] = mapped_column(ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    instructor: Mapped["Instructor"] = relationship("Instructor", lazy="selectin")

    def overlaps(self, start: time, end: time) -> bool:
        return self.start_time < end and start < self.end_time

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instructor_id": self.instructor_id,
            "instructor_name": self.instructor.full_name if self.instructor else None,
            "date": iso(self.date),
            "start_time": iso(self.start_time),
            "end_time": iso(self.end_time),
            "is_available": self.is_available,
            "reason": self.reason,
        }
