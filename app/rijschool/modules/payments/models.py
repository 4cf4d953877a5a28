from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.rijschool.models import Base
from app.rijschool.utils import iso, money

if TYPE_CHECKING:
    from app.rijschool.modules.accounts.models import Student
    from app.rijschool.modules.packages.models import LessonPackage


class PaymentProof(Base):
    """
    A student's claim that they paid for a lesson package.

    Walks pending -> accepted -> invoice_sent -> payment_received -> approved,
    or ends in rejected from any open state. Lessons are credited on approval.
    """

    __tablename__ = "payment_proofs"
    __table_args__ = (
        CheckConstraint("lessons_count > 0", name="ck_payment_proofs_lessons_count"),
        Index("idx_payment_proofs_student", "student_id"),
        Index("idx_payment_proofs_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    lesson_package_id: Mapped[int] = mapped_column(ForeignKey("lesson_packages.id"), nullable=False)

    proof_email: Mapped[str] = mapped_column(String(320), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # package price at submission
    lessons_count: Mapped[int] = mapped_column(Integer, nullable=False)  # credited on approval
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")

    invoice_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    lessons_added: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    processed_by: Mapped[int | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    invoice_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    payment_received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    lesson_package: Mapped["LessonPackage"] = relationship("LessonPackage", lazy="selectin")

    def to_dict(self, *, include_student: bool = True) -> dict:
        out = {
            "id": self.id,
            "student_id": self.student_id,
            "lesson_package_id": self.lesson_package_id,
            "package_name": self.lesson_package.name if self.lesson_package else None,
            "lessons_count": self.lessons_count,
            "proof_email": self.proof_email,
            "amount": money(self.amount),
            "status": self.status,
            "invoice_email": self.invoice_email,
            "admin_notes": self.admin_notes,
            "rejection_reason": self.rejection_reason,
            "lessons_added": self.lessons_added,
            "submitted_at": iso(self.submitted_at),
            "processed_at": iso(self.processed_at),
            "processed_by": self.processed_by,
            "invoice_sent_at": iso(self.invoice_sent_at),
            "payment_received_at": iso(self.payment_received_at),
            "approved_at": iso(self.approved_at),
        }
        if include_student:
            out["student_name"] = self.student.full_name if self.student else None
            out["student_email"] = self.student.profile.email if self.student and self.student.profile else None
        return out
