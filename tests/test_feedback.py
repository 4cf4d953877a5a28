"""Tests for lesson feedback."""
import pytest


@pytest.fixture()
def lesson(instructor_client, ids, next_week, credited):
    r = instructor_client.post(
        "/api/lessons",
        json={"student_id": ids["student_id"], "scheduled_at": next_week.isoformat()},
    )
    return r.json["lesson"]


def _complete(client, lesson):
    r = client.post(f"/api/lessons/{lesson['id']}/status", json={"status": "completed"})
    assert r.status_code == 200


def test_feedback_needs_completed_lesson(instructor_client, lesson):
    r = instructor_client.post(f"/api/lessons/{lesson['id']}/feedback", json={"driving_skills": 4})
    assert r.status_code == 400


def test_give_feedback_once(instructor_client, student_client, lesson):
    _complete(instructor_client, lesson)
    r = instructor_client.post(
        f"/api/lessons/{lesson['id']}/feedback",
        json={
            "driving_skills": 4,
            "parking_skills": 2,
            "traffic_awareness": "3",
            "overall_progress": 4,
            "comments": "Goed ingevoegd op de snelweg",
            "recommendations": "Fileparkeren oefenen",
        },
    )
    assert r.status_code == 201
    feedback = r.json["feedback"]
    assert feedback["traffic_awareness"] == 3
    assert feedback["instructor_name"] == "Ivo Instructor"

    r = instructor_client.post(f"/api/lessons/{lesson['id']}/feedback", json={"driving_skills": 5})
    assert r.status_code == 409

    mine = student_client.get("/api/feedback").json["feedback"]
    assert [f["lesson_id"] for f in mine] == [lesson["id"]]
    assert mine[0]["recommendations"] == "Fileparkeren oefenen"


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_ratings_are_one_to_five(instructor_client, lesson, rating):
    _complete(instructor_client, lesson)
    r = instructor_client.post(f"/api/lessons/{lesson['id']}/feedback", json={"overall_progress": rating})
    assert r.status_code == 400


def test_ratings_are_optional(instructor_client, lesson):
    _complete(instructor_client, lesson)
    r = instructor_client.post(f"/api/lessons/{lesson['id']}/feedback", json={"comments": "Prima"})
    assert r.status_code == 201
    assert r.json["feedback"]["driving_skills"] is None


def test_students_cannot_give_feedback(instructor_client, student_client, lesson):
    _complete(instructor_client, lesson)
    r = student_client.post(f"/api/lessons/{lesson['id']}/feedback", json={"driving_skills": 5})
    assert r.status_code == 403


def test_other_students_see_nothing(admin_client, instructor_client, lesson, login_as):
    _complete(instructor_client, lesson)
    instructor_client.post(f"/api/lessons/{lesson['id']}/feedback", json={"driving_skills": 5})
    admin_client.post("/api/students", json={"email": "other@example.com", "password": "secret1", "full_name": "Other"})
    other = login_as("other@example.com", "secret1")
    assert other.get("/api/feedback").json["feedback"] == []
    assert len(admin_client.get("/api/feedback").json["feedback"]) == 1
