"""Tests for payment proofs and the approval state machine."""
import pytest

from app.rijschool.constants import PaymentStatus
from app.rijschool.modules.payments.models import PaymentProof
from app.rijschool.modules.payments.service import STATUS_TRANSITIONS, can_transition_to


def _package(admin_client, *, lessons_count=10, price="450.00", name="Tien lessen"):
    r = admin_client.post("/api/packages", json={"name": name, "lessons_count": lessons_count, "price": price})
    assert r.status_code == 201
    return r.json["package"]


def _submit(student_client, package_id, proof_email="pay@example.com"):
    r = student_client.post("/api/payment-proofs", json={"lesson_package_id": package_id, "proof_email": proof_email})
    assert r.status_code == 201
    return r.json["payment_proof"]


def _walk_to(admin_client, proof_id, *steps):
    for step in steps:
        r = admin_client.post(f"/api/payment-proofs/{proof_id}/{step}", json={})
        assert r.status_code == 200, (step, r.json)
    return r.json


def test_submit_uses_package_price(admin_client, student_client, ids):
    package = _package(admin_client, price="450")
    proof = _submit(student_client, package["id"])
    assert proof["status"] == "pending"
    assert proof["amount"] == 450.0
    assert proof["student_id"] == ids["student_id"]
    assert proof["package_name"] == "Tien lessen"


def test_full_flow_credits_lessons(admin_client, student_client, ids):
    package = _package(admin_client, lessons_count=10)
    proof = _submit(student_client, package["id"])

    body = _walk_to(admin_client, proof["id"], "accept")
    assert body["payment_proof"]["status"] == "accepted"
    assert body["payment_proof"]["invoice_email"] == "pay@example.com"
    assert body["payment_proof"]["processed_at"] is not None

    body = _walk_to(admin_client, proof["id"], "invoice-sent", "payment-received", "approve")
    approved = body["payment_proof"]
    assert approved["status"] == "approved"
    assert approved["lessons_added"] is True
    assert approved["approved_at"] is not None
    assert approved["invoice_sent_at"] is not None
    assert approved["payment_received_at"] is not None
    assert body["lessons_remaining"] == 10

    r = student_client.get(f"/api/students/{ids['student_id']}/balance")
    assert r.json["balance"]["purchased"] == 10
    assert r.json["balance"]["remaining"] == 10


def test_accept_with_custom_invoice_email(admin_client, student_client):
    proof = _submit(student_client, _package(admin_client)["id"])
    r = admin_client.post(f"/api/payment-proofs/{proof['id']}/accept", json={"invoice_email": "Billing@Example.com"})
    assert r.status_code == 200
    assert r.json["payment_proof"]["invoice_email"] == "billing@example.com"


def test_cannot_skip_steps(admin_client, student_client):
    proof = _submit(student_client, _package(admin_client)["id"])
    r = admin_client.post(f"/api/payment-proofs/{proof['id']}/approve")
    assert r.status_code == 409
    assert "Cannot transition from 'pending' to 'approved'" in r.json["error"]


def test_approve_twice_adds_lessons_once(admin_client, student_client, ids):
    proof = _submit(student_client, _package(admin_client, lessons_count=10)["id"])
    _walk_to(admin_client, proof["id"], "accept", "invoice-sent", "payment-received", "approve")

    r = admin_client.post(f"/api/payment-proofs/{proof['id']}/approve")
    assert r.status_code == 409
    r = admin_client.get(f"/api/students/{ids['student_id']}")
    assert r.json["student"]["lessons_remaining"] == 10


def test_terminal_states_are_final(admin_client, student_client):
    proof = _submit(student_client, _package(admin_client)["id"])
    r = admin_client.post(f"/api/payment-proofs/{proof['id']}/reject", json={"reason": "Bedrag klopt niet"})
    assert r.status_code == 200
    assert r.json["payment_proof"]["status"] == "rejected"
    assert r.json["payment_proof"]["rejection_reason"] == "Bedrag klopt niet"

    for step in ("accept", "reject", "approve"):
        r = admin_client.post(f"/api/payment-proofs/{proof['id']}/{step}", json={})
        assert r.status_code == 409


def test_reject_from_any_open_state(admin_client, student_client, ids):
    proof = _submit(student_client, _package(admin_client)["id"])
    _walk_to(admin_client, proof["id"], "accept", "invoice-sent", "payment-received")
    r = admin_client.post(f"/api/payment-proofs/{proof['id']}/reject", json={})
    assert r.status_code == 200
    assert r.json["payment_proof"]["lessons_added"] is False
    r = admin_client.get(f"/api/students/{ids['student_id']}")
    assert r.json["student"]["lessons_remaining"] == 0


def test_status_dispatcher_stores_notes(admin_client, student_client):
    proof = _submit(student_client, _package(admin_client)["id"])
    r = admin_client.post(
        f"/api/payment-proofs/{proof['id']}/status",
        json={"status": "accepted", "notes": "Factuur volgt"},
    )
    assert r.status_code == 200
    assert r.json["payment_proof"]["status"] == "accepted"
    assert r.json["payment_proof"]["admin_notes"] == "Factuur volgt"


def test_status_dispatcher_rejects_unknown_status(admin_client, student_client):
    proof = _submit(student_client, _package(admin_client)["id"])
    r = admin_client.post(f"/api/payment-proofs/{proof['id']}/status", json={"status": "paid"})
    assert r.status_code == 400
    assert "Invalid status 'paid'" in r.json["error"]


def test_status_dispatcher_cannot_go_back_to_pending(admin_client, student_client):
    proof = _submit(student_client, _package(admin_client)["id"])
    r = admin_client.post(f"/api/payment-proofs/{proof['id']}/status", json={"status": "pending"})
    assert r.status_code == 409


def test_pending_count_counts_pending_and_accepted(admin_client, student_client):
    package = _package(admin_client)
    first = _submit(student_client, package["id"])
    second = _submit(student_client, package["id"])
    third = _submit(student_client, package["id"])
    _walk_to(admin_client, first["id"], "accept")
    _walk_to(admin_client, second["id"], "accept", "invoice-sent")
    assert third["status"] == "pending"

    r = admin_client.get("/api/payment-proofs/pending-count")
    assert r.json["count"] == 2


def test_students_only_see_their_own_proofs(admin_client, student_client, login_as):
    package = _package(admin_client)
    _submit(student_client, package["id"])
    admin_client.post("/api/students", json={"email": "other@example.com", "password": "secret1", "full_name": "Other"})
    other = login_as("other@example.com", "secret1")

    assert other.get("/api/payment-proofs").json["payment_proofs"] == []
    assert len(student_client.get("/api/payment-proofs").json["payment_proofs"]) == 1
    assert len(admin_client.get("/api/payment-proofs").json["payment_proofs"]) == 1


def test_instructors_have_no_access(instructor_client):
    r = instructor_client.get("/api/payment-proofs")
    assert r.status_code == 403


def test_inactive_package_cannot_be_bought(admin_client, student_client):
    package = _package(admin_client)
    admin_client.patch(f"/api/packages/{package['id']}", json={"is_active": False})
    r = student_client.post("/api/payment-proofs", json={"lesson_package_id": package["id"], "proof_email": "p@example.com"})
    assert r.status_code == 404


def test_transition_table_has_terminal_states():
    assert STATUS_TRANSITIONS[PaymentStatus.APPROVED] == set()
    assert STATUS_TRANSITIONS[PaymentStatus.REJECTED] == set()
    for status in (PaymentStatus.PENDING, PaymentStatus.ACCEPTED, PaymentStatus.INVOICE_SENT, PaymentStatus.PAYMENT_RECEIVED):
        assert PaymentStatus.REJECTED in STATUS_TRANSITIONS[status]


@pytest.mark.parametrize("stored", ["paid", "PENDING", ""])
def test_unknown_stored_status_cannot_transition(stored):
    proof = PaymentProof(status=stored)
    ok, errors = can_transition_to(proof, PaymentStatus.ACCEPTED)
    assert ok is False
    assert "is invalid" in errors[0]
