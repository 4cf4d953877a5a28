"""Tests for lesson requests."""
from datetime import datetime, timedelta

import pytest

from app.rijschool.context import build_context
from app.rijschool.db import session_scope
from app.rijschool.errors import Conflict
from app.rijschool.models import User
from app.rijschool.modules.lesson_requests.models import LessonRequest
from app.rijschool.modules.lesson_requests.service import respond_to_request
from app.rijschool.modules.lessons.models import Lesson


def _request(student_client, ids, when, **extra):
    payload = {"instructor_id": ids["instructor_id"], "requested_date": when.isoformat(), **extra}
    return student_client.post("/api/lesson-requests", json=payload)


def test_request_must_be_in_the_future(student_client, ids):
    r = _request(student_client, ids, datetime.now() - timedelta(hours=1))
    assert r.status_code == 400
    assert r.json["error"] == "Requested date must be in the future."


def test_pending_request_is_not_a_lesson(student_client, instructor_client, ids, next_week):
    r = _request(student_client, ids, next_week, location="Thuis", notes="Snelweg oefenen")
    assert r.status_code == 201
    req = r.json["lesson_request"]
    assert req["status"] == "pending"
    assert req["duration_minutes"] == 60

    assert student_client.get("/api/lessons").json["lessons"] == []
    assert instructor_client.get("/api/lessons").json["lessons"] == []
    assert len(instructor_client.get("/api/lesson-requests").json["lesson_requests"]) == 1


def test_accept_creates_lesson(admin_client, student_client, instructor_client, ids, next_week, credited):
    req = _request(student_client, ids, next_week, duration_minutes=90, location="Thuis").json["lesson_request"]

    r = instructor_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "accepted"})
    assert r.status_code == 200
    assert r.json["lesson_request"]["status"] == "accepted"
    lesson = r.json["lesson"]
    assert lesson["lesson_request_id"] == req["id"]
    assert lesson["duration_minutes"] == 90
    assert lesson["location"] == "Thuis"
    assert lesson["scheduled_at"] == next_week.isoformat()

    lessons = student_client.get("/api/lessons").json["lessons"]
    assert [item["id"] for item in lessons] == [lesson["id"]]
    assert admin_client.get(f"/api/students/{ids['student_id']}").json["student"]["lessons_remaining"] == credited - 1


def test_second_accept_conflicts(student_client, instructor_client, ids, next_week, credited):
    req = _request(student_client, ids, next_week).json["lesson_request"]
    assert instructor_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "accepted"}).status_code == 200
    r = instructor_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "accepted"})
    assert r.status_code == 409
    assert len(instructor_client.get("/api/lessons").json["lessons"]) == 1


def test_concurrent_accept_loses_compare_and_set(app, student_client, ids, next_week, credited):
    req_id = _request(student_client, ids, next_week).json["lesson_request"]["id"]

    sm = app.extensions["sqlalchemy_sessionmaker"]
    s = sm()
    try:
        user = s.query(User).filter(User.email == "instructor@example.com").one()
        ctx = build_context(user)
        stale = s.get(LessonRequest, req_id)
        assert stale.status == "pending"

        # Another responder wins the race.
        with session_scope(app) as other:
            other.get(LessonRequest, req_id).status = "rejected"

        with pytest.raises(Conflict):
            respond_to_request(s, ctx, req_id, "accepted")
        s.rollback()
    finally:
        s.close()

    with session_scope(app) as s:
        assert s.get(LessonRequest, req_id).status == "rejected"
        assert s.query(Lesson).count() == 0


def test_reject_with_notes(student_client, instructor_client, ids, next_week):
    req = _request(student_client, ids, next_week).json["lesson_request"]
    r = instructor_client.post(
        f"/api/lesson-requests/{req['id']}/respond",
        json={"status": "rejected", "instructor_notes": "Dan ben ik op vakantie"},
    )
    assert r.status_code == 200
    assert r.json["lesson"] is None
    assert r.json["lesson_request"]["instructor_notes"] == "Dan ben ik op vakantie"
    assert instructor_client.get("/api/lessons").json["lessons"] == []


def test_respond_validates_status(student_client, instructor_client, ids, next_week):
    req = _request(student_client, ids, next_week).json["lesson_request"]
    r = instructor_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "pending"})
    assert r.status_code == 400
    r = instructor_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "maybe"})
    assert r.status_code == 400


def test_accept_into_blocked_slot_keeps_request_pending(student_client, instructor_client, ids, next_week, credited):
    req = _request(student_client, ids, next_week).json["lesson_request"]
    instructor_client.post(
        "/api/availability",
        json={"date": next_week.date().isoformat(), "start_time": "09:00", "end_time": "12:00", "reason": "Examen"},
    )
    r = instructor_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "accepted"})
    assert r.status_code == 409

    reqs = instructor_client.get("/api/lesson-requests").json["lesson_requests"]
    assert reqs[0]["status"] == "pending"


def test_students_cannot_respond(student_client, ids, next_week):
    req = _request(student_client, ids, next_week).json["lesson_request"]
    r = student_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "accepted"})
    assert r.status_code == 403


def test_other_instructor_cannot_see_request(admin_client, student_client, ids, next_week, login_as):
    req = _request(student_client, ids, next_week).json["lesson_request"]
    admin_client.post("/api/instructors", json={"email": "i2@example.com", "password": "secret1", "full_name": "Other"})
    other = login_as("i2@example.com", "secret1")
    assert other.get("/api/lesson-requests").json["lesson_requests"] == []
    r = other.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "accepted"})
    assert r.status_code == 404


def test_accept_without_remaining_lessons_keeps_request_pending(student_client, instructor_client, ids, next_week):
    req = _request(student_client, ids, next_week).json["lesson_request"]
    r = instructor_client.post(f"/api/lesson-requests/{req['id']}/respond", json={"status": "accepted"})
    assert r.status_code == 409
    assert r.json["error"] == "The student has no lessons remaining."

    reqs = instructor_client.get("/api/lesson-requests").json["lesson_requests"]
    assert reqs[0]["status"] == "pending"
    assert instructor_client.get("/api/lessons").json["lessons"] == []
