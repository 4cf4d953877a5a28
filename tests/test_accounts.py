"""Tests for student and instructor accounts."""
import pytest

from app.rijschool.db import session_scope
from app.rijschool.errors import Conflict, ValidationError
from app.rijschool.models import AuditEvent, Profile, User
from app.rijschool.modules.accounts.models import Student
from app.rijschool.modules.accounts.service import create_student_account


def _count(app, model, *criteria):
    with session_scope(app) as s:
        return s.query(model).filter(*criteria).count()


def test_admin_creates_student(admin_client):
    r = admin_client.post(
        "/api/students",
        json={"email": "  New.Student@Example.com ", "password": "secret1", "full_name": "New Student", "phone": "0612345678"},
    )
    assert r.status_code == 201
    student = r.json["student"]
    assert student["license_type"] == "B"
    assert student["lessons_remaining"] == 0
    assert student["theory_exam_passed"] is False
    assert student["profile"]["email"] == "new.student@example.com"
    assert student["profile"]["role"] == "student"


def test_new_student_can_log_in(admin_client, login_as):
    admin_client.post("/api/students", json={"email": "x@example.com", "password": "secret1", "full_name": "X"})
    c = login_as("x@example.com", "secret1")
    assert c.get("/auth/me").json["user"]["role"] == "student"


def test_duplicate_email_conflicts(admin_client):
    r = admin_client.post("/api/students", json={"email": "student@example.com", "password": "secret1", "full_name": "Dup"})
    assert r.status_code == 409


def test_short_password_rejected(admin_client):
    r = admin_client.post("/api/students", json={"email": "a@example.com", "password": "12345", "full_name": "A"})
    assert r.status_code == 400
    assert "at least 6" in r.json["error"]


def test_missing_fields_rejected(app):
    with pytest.raises(ValidationError):
        with session_scope(app) as s:
            create_student_account(s, email="", password="secret1", full_name="Nobody")


def test_failed_creation_leaves_no_orphans(app, admin_client, monkeypatch):
    import app.rijschool.modules.accounts.service as accounts_service

    def _boom(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    users_before = _count(app, User)
    profiles_before = _count(app, Profile)
    monkeypatch.setattr(accounts_service, "record_event", _boom)

    r = admin_client.post(
        "/functions/create-student",
        json={"email": "half@example.com", "password": "secret1", "full_name": "Half Made"},
    )
    assert r.status_code == 500
    assert r.json == {"error": "Internal server error"}

    assert _count(app, User, User.email == "half@example.com") == 0
    assert _count(app, User) == users_before
    assert _count(app, Profile) == profiles_before


def test_service_conflict_on_duplicate(app):
    with pytest.raises(Conflict):
        with session_scope(app) as s:
            create_student_account(s, email="STUDENT@example.com", password="secret1", full_name="Again")


def test_student_cannot_create_students(student_client):
    r = student_client.post("/api/students", json={"email": "b@example.com", "password": "secret1", "full_name": "B"})
    assert r.status_code == 403


def test_instructor_can_create_student(instructor_client):
    r = instructor_client.post(
        "/api/students",
        json={"email": "c@example.com", "password": "secret1", "full_name": "C", "license_type": "a"},
    )
    assert r.status_code == 201
    assert r.json["student"]["license_type"] == "A"


def test_admin_creates_instructor(admin_client):
    r = admin_client.post(
        "/api/instructors",
        json={
            "email": "new.instructor@example.com",
            "password": "secret1",
            "full_name": "Nina",
            "specializations": "B, automatic",
            "max_lessons_per_day": 6,
        },
    )
    assert r.status_code == 201
    instructor = r.json["instructor"]
    assert instructor["specializations"] == ["B", "automatic"]
    assert instructor["max_lessons_per_day"] == 6


def test_update_student_records_audit(app, admin_client, ids):
    r = admin_client.patch(
        f"/api/students/{ids['student_id']}",
        json={"theory_exam_passed": True, "full_name": "Sanne de Student"},
    )
    assert r.status_code == 200
    assert r.json["student"]["theory_exam_passed"] is True
    assert r.json["student"]["profile"]["full_name"] == "Sanne de Student"
    assert _count(app, AuditEvent, AuditEvent.action == "student.edit") == 1


def test_update_own_profile(student_client):
    r = student_client.patch("/api/profile", json={"phone": "0600000000", "address": "Dorpsstraat 1"})
    assert r.status_code == 200
    assert r.json["profile"]["phone"] == "0600000000"
    assert r.json["profile"]["address"] == "Dorpsstraat 1"


def test_delete_student_removes_account(app, admin_client, ids):
    r = admin_client.delete(f"/api/students/{ids['student_id']}")
    assert r.status_code == 200
    assert admin_client.get(f"/api/students/{ids['student_id']}").status_code == 404
    assert _count(app, User, User.email == "student@example.com") == 0
    assert _count(app, Student) == 0


def test_list_students_search(admin_client):
    r = admin_client.get("/api/students?q=sanne")
    assert r.status_code == 200
    assert [st["profile"]["full_name"] for st in r.json["students"]] == ["Sanne Student"]


def test_instructor_cannot_see_overview(instructor_client):
    r = instructor_client.get("/api/students/overview")
    assert r.status_code == 403
