from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission
from app.rijschool.utils import request_payload

from .service import (
    accept_payment_proof,
    approve_payment_and_add_lessons,
    get_payment_proof,
    list_payment_proofs,
    mark_invoice_sent,
    mark_payment_received,
    pending_count,
    reject_payment,
    submit_payment_proof,
    update_payment_status,
)

bp = Blueprint("payments", __name__)


@bp.get("/payment-proofs")
@require_permission("payments.view")
def proofs_list(ctx: AuthContext):
    s = db_session()
    proofs = list_payment_proofs(s, ctx, status=(request.args.get("status") or "").strip() or None)
    return jsonify({"payment_proofs": [p.to_dict() for p in proofs]})


@bp.get("/payment-proofs/pending-count")
@require_permission("payments.process")
def proofs_pending_count(ctx: AuthContext):
    s = db_session()
    return jsonify({"count": pending_count(s)})


@bp.post("/payment-proofs")
@require_permission("payments.submit")
def proofs_submit(ctx: AuthContext):
    s = db_session()
    proof = submit_payment_proof(s, ctx, request_payload())
    s.commit()
    return jsonify({"payment_proof": proof.to_dict()}), 201


@bp.get("/payment-proofs/<int:proof_id>")
@require_permission("payments.view")
def proof_detail(ctx: AuthContext, proof_id: int):
    s = db_session()
    return jsonify({"payment_proof": get_payment_proof(s, ctx, proof_id).to_dict()})


@bp.post("/payment-proofs/<int:proof_id>/accept")
@require_permission("payments.process")
def proof_accept(ctx: AuthContext, proof_id: int):
    s = db_session()
    proof = accept_payment_proof(s, ctx, proof_id, request_payload().get("invoice_email"))
    s.commit()
    return jsonify({"payment_proof": proof.to_dict()})


@bp.post("/payment-proofs/<int:proof_id>/invoice-sent")
@require_permission("payments.process")
def proof_invoice_sent(ctx: AuthContext, proof_id: int):
    s = db_session()
    proof = mark_invoice_sent(s, ctx, proof_id)
    s.commit()
    return jsonify({"payment_proof": proof.to_dict()})


@bp.post("/payment-proofs/<int:proof_id>/payment-received")
@require_permission("payments.process")
def proof_payment_received(ctx: AuthContext, proof_id: int):
    s = db_session()
    proof = mark_payment_received(s, ctx, proof_id)
    s.commit()
    return jsonify({"payment_proof": proof.to_dict()})


@bp.post("/payment-proofs/<int:proof_id>/approve")
@require_permission("payments.process")
def proof_approve(ctx: AuthContext, proof_id: int):
    s = db_session()
    proof = approve_payment_and_add_lessons(s, ctx, proof_id)
    s.commit()
    return jsonify({"payment_proof": proof.to_dict(), "lessons_remaining": proof.student.lessons_remaining})


@bp.post("/payment-proofs/<int:proof_id>/reject")
@require_permission("payments.process")
def proof_reject(ctx: AuthContext, proof_id: int):
    s = db_session()
    proof = reject_payment(s, ctx, proof_id, request_payload().get("reason"))
    s.commit()
    return jsonify({"payment_proof": proof.to_dict()})


@bp.post("/payment-proofs/<int:proof_id>/status")
@require_permission("payments.process")
def proof_status(ctx: AuthContext, proof_id: int):
    s = db_session()
    payload = request_payload()
    proof = update_payment_status(
        s,
        ctx,
        proof_id,
        payload.get("status"),
        payload.get("notes"),
        invoice_email=payload.get("invoice_email"),
    )
    s.commit()
    return jsonify({"payment_proof": proof.to_dict()})
