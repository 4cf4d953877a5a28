from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.rijschool.models import Base
from app.rijschool.utils import money


class LessonPackage(Base):
    __tablename__ = "lesson_packages"
    __table_args__ = (
        CheckConstraint("lessons_count > 0", name="ck_lesson_packages_lessons_count"),
        CheckConstraint("price >= 0", name="ck_lesson_packages_price"),
        Index("idx_lesson_packages_active_price", "is_active", "price"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lessons_count: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "lessons_count": self.lessons_count,
            "price": money(self.price),
            "description": self.description,
            "is_active": self.is_active,
        }
