from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.rijschool.models import Base


class Car(Base):
    __tablename__ = "cars"
    __table_args__ = (
        Index("idx_cars_is_available", "is_available"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    license_plate: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # stored uppercased
    brand: Mapped[str] = mapped_column(String(128), nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "license_plate": self.license_plate,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "is_available": self.is_available,
        }
