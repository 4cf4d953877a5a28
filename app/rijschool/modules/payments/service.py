from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.rijschool.access import require_student, scope_query
from app.rijschool.audit import record_event
from app.rijschool.constants import PaymentStatus, parse_enum
from app.rijschool.errors import InvalidTransition, NotFound, PermissionDenied, ValidationError
from app.rijschool.modules.lessons.service import refresh_lessons_remaining
from app.rijschool.modules.packages.models import LessonPackage
from app.rijschool.utils import clean_str, money, parse_int

from .models import PaymentProof

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext

logger = logging.getLogger(__name__)


STATUS_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.ACCEPTED, PaymentStatus.REJECTED},
    PaymentStatus.ACCEPTED: {PaymentStatus.INVOICE_SENT, PaymentStatus.REJECTED},
    PaymentStatus.INVOICE_SENT: {PaymentStatus.PAYMENT_RECEIVED, PaymentStatus.REJECTED},
    PaymentStatus.PAYMENT_RECEIVED: {PaymentStatus.APPROVED, PaymentStatus.REJECTED},
    PaymentStatus.APPROVED: set(),
    PaymentStatus.REJECTED: set(),
}

# Proofs an admin still has to act on.
OPEN_STATUSES = (PaymentStatus.PENDING, PaymentStatus.ACCEPTED)


def can_transition_to(proof: PaymentProof, new_status: PaymentStatus) -> tuple[bool, list[str]]:
    """Check if proof can transition to new_status."""
    errors = []
    try:
        current = PaymentStatus(proof.status)
    except ValueError:
        errors.append(f"Current status '{proof.status}' is invalid")
        return False, errors
    if new_status not in STATUS_TRANSITIONS[current]:
        errors.append(f"Cannot transition from '{current.value}' to '{new_status.value}'")
        return False, errors
    return True, []


def _lock_proof(s: "Session", proof_id: int) -> PaymentProof:
    proof = (
        s.query(PaymentProof)
        .filter(PaymentProof.id == proof_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if proof is None:
        raise NotFound("Payment proof not found.")
    return proof


def _transition(
    s: "Session",
    ctx: "AuthContext",
    proof_id: int,
    new_status: PaymentStatus,
    *,
    apply: Callable[[PaymentProof, datetime], None] | None = None,
    reason: str | None = None,
    metadata: dict | None = None,
) -> PaymentProof:
    """
    Lock the proof, re-check its current status and move it to ``new_status``.
    A second admin racing on the same proof sees the updated status and gets
    an InvalidTransition instead of repeating the step.
    """
    proof = _lock_proof(s, proof_id)
    ok, errors = can_transition_to(proof, new_status)
    if not ok:
        raise InvalidTransition(errors[0], details=errors)

    now = datetime.utcnow()
    old_status = proof.status
    proof.status = new_status.value
    proof.processed_at = now
    proof.processed_by = ctx.profile_id
    proof.updated_at = now
    if apply is not None:
        apply(proof, now)

    record_event(
        s,
        actor=ctx,
        action=f"payment_proof.{new_status.value}",
        entity_type="PaymentProof",
        entity_id=str(proof.id),
        reason=reason,
        metadata={"from": old_status, "to": new_status.value, "student_id": proof.student_id, **(metadata or {})},
    )
    logger.info("Payment proof %s: %s -> %s", proof.id, old_status, new_status.value)
    return proof


def submit_payment_proof(s: "Session", ctx: "AuthContext", payload: dict) -> PaymentProof:
    """Student claims payment for a package; the amount is the package price right now."""
    student_id = require_student(ctx)
    package_id = parse_int(payload.get("lesson_package_id"), field="lesson_package_id")
    proof_email = (clean_str(payload.get("proof_email")) or "").lower()

    errors = []
    if package_id is None:
        errors.append("Lesson package is required.")
    if not proof_email or "@" not in proof_email:
        errors.append("A valid proof email address is required.")
    if errors:
        raise ValidationError(errors[0], details=errors)

    package = s.get(LessonPackage, package_id)
    if package is None or not package.is_active:
        raise NotFound("Lesson package not found.")

    now = datetime.utcnow()
    proof = PaymentProof(
        student_id=student_id,
        lesson_package_id=package.id,
        proof_email=proof_email,
        amount=package.price,
        lessons_count=package.lessons_count,
        status=PaymentStatus.PENDING.value,
        lessons_added=False,
        submitted_at=now,
        created_at=now,
        updated_at=now,
    )
    s.add(proof)
    s.flush()

    record_event(
        s,
        actor=ctx,
        action="payment_proof.submit",
        entity_type="PaymentProof",
        entity_id=str(proof.id),
        metadata={
            "lesson_package_id": package.id,
            "amount": money(package.price),
            "lessons_count": package.lessons_count,
            "proof_email": proof_email,
        },
    )
    return proof


def accept_payment_proof(
    s: "Session", ctx: "AuthContext", proof_id: int, invoice_email: str | None = None
) -> PaymentProof:
    email = (clean_str(invoice_email) or "").lower() or None
    if email is not None and "@" not in email:
        raise ValidationError("Invoice email address is invalid.")

    def apply(proof: PaymentProof, _now: datetime) -> None:
        proof.invoice_email = email or proof.proof_email

    return _transition(s, ctx, proof_id, PaymentStatus.ACCEPTED, apply=apply, metadata={"invoice_email": email})


def mark_invoice_sent(s: "Session", ctx: "AuthContext", proof_id: int) -> PaymentProof:
    def apply(proof: PaymentProof, now: datetime) -> None:
        proof.invoice_sent_at = now

    return _transition(s, ctx, proof_id, PaymentStatus.INVOICE_SENT, apply=apply)


def mark_payment_received(s: "Session", ctx: "AuthContext", proof_id: int) -> PaymentProof:
    def apply(proof: PaymentProof, now: datetime) -> None:
        proof.payment_received_at = now

    return _transition(s, ctx, proof_id, PaymentStatus.PAYMENT_RECEIVED, apply=apply)


def approve_payment_and_add_lessons(s: "Session", ctx: "AuthContext", proof_id: int) -> PaymentProof:
    """
    Final step: approve the proof and credit the package's lessons to the
    student. The credit and the status change commit together.
    """

    def apply(proof: PaymentProof, now: datetime) -> None:
        proof.approved_at = now
        proof.lessons_added = True

    proof = _transition(s, ctx, proof_id, PaymentStatus.APPROVED, apply=apply)
    remaining = refresh_lessons_remaining(s, proof.student_id)
    record_event(
        s,
        actor=ctx,
        action="student.lessons_credit",
        entity_type="Student",
        entity_id=str(proof.student_id),
        metadata={
            "payment_proof_id": proof.id,
            "lessons_added": proof.lessons_count,
            "lessons_remaining": remaining,
        },
    )
    return proof


def reject_payment(s: "Session", ctx: "AuthContext", proof_id: int, reason: str | None = None) -> PaymentProof:
    reason = clean_str(reason)

    def apply(proof: PaymentProof, _now: datetime) -> None:
        proof.rejection_reason = reason

    return _transition(s, ctx, proof_id, PaymentStatus.REJECTED, apply=apply, reason=reason)


def update_payment_status(
    s: "Session",
    ctx: "AuthContext",
    proof_id: int,
    new_status: object,
    notes: str | None = None,
    *,
    invoice_email: str | None = None,
) -> PaymentProof:
    """Generic dispatcher: validate the target status and run the matching step."""
    target = parse_enum(PaymentStatus, new_status)
    if target == PaymentStatus.ACCEPTED:
        proof = accept_payment_proof(s, ctx, proof_id, invoice_email)
    elif target == PaymentStatus.INVOICE_SENT:
        proof = mark_invoice_sent(s, ctx, proof_id)
    elif target == PaymentStatus.PAYMENT_RECEIVED:
        proof = mark_payment_received(s, ctx, proof_id)
    elif target == PaymentStatus.APPROVED:
        proof = approve_payment_and_add_lessons(s, ctx, proof_id)
    elif target == PaymentStatus.REJECTED:
        proof = reject_payment(s, ctx, proof_id, notes)
    else:
        raise InvalidTransition(f"Cannot move a payment proof back to '{target.value}'")

    notes = clean_str(notes)
    if notes is not None:
        proof.admin_notes = notes
    return proof


def get_payment_proof(s: "Session", ctx: "AuthContext", proof_id: int) -> PaymentProof:
    proof = s.get(PaymentProof, proof_id)
    if proof is None or not (ctx.is_admin or (ctx.is_student and proof.student_id == ctx.student_id)):
        raise NotFound("Payment proof not found.")
    return proof


def list_payment_proofs(s: "Session", ctx: "AuthContext", *, status: str | None = None) -> list[PaymentProof]:
    if not (ctx.is_admin or ctx.is_student):
        raise PermissionDenied("Payment proofs are visible to admins and the paying student only.")
    q = scope_query(s.query(PaymentProof), PaymentProof, ctx)
    if status:
        q = q.filter(PaymentProof.status == parse_enum(PaymentStatus, status).value)
    return q.order_by(PaymentProof.submitted_at.desc(), PaymentProof.id.desc()).all()


def pending_count(s: "Session") -> int:
    """Proofs waiting on an admin (pending or accepted)."""
    return int(
        s.query(func.count(PaymentProof.id))
        .filter(PaymentProof.status.in_([st.value for st in OPEN_STATUSES]))
        .scalar()
        or 0
    )


def counts_by_status(s: "Session", ctx: "AuthContext") -> dict[str, int]:
    q = scope_query(s.query(PaymentProof.status, func.count(PaymentProof.id)), PaymentProof, ctx)
    counts = {st.value: 0 for st in PaymentStatus}
    for status, n in q.group_by(PaymentProof.status).all():
        counts[status] = int(n)
    return counts
