"""Tests for instructor availability."""
from datetime import date, time, timedelta

from app.rijschool.db import session_scope
from app.rijschool.modules.availability.service import is_instructor_available, lesson_window


def _block(client, day, start, end, **extra):
    return client.post(
        "/api/availability",
        json={"date": day.isoformat(), "start_time": start, "end_time": end, **extra},
    )


def _check(client, ids, day, start, end):
    r = client.get(
        "/api/availability/check",
        query_string={"instructor_id": ids["instructor_id"], "date": day.isoformat(), "start_time": start, "end_time": end},
    )
    assert r.status_code == 200
    return r.json["available"]


def test_blocked_entry_makes_instructor_unavailable(instructor_client, ids, next_week):
    day = next_week.date()
    r = _block(instructor_client, day, "12:00", "13:00", reason="Tandarts")
    assert r.status_code == 201
    entry = r.json["entry"]
    assert entry["is_available"] is False
    assert entry["start_time"] == "12:00"

    assert _check(instructor_client, ids, day, "12:30", "13:30") is False
    assert _check(instructor_client, ids, day, "11:00", "12:00") is True
    assert _check(instructor_client, ids, day, "14:00", "15:00") is True


def test_available_entry_does_not_block(instructor_client, ids, next_week):
    day = next_week.date()
    _block(instructor_client, day, "12:00", "13:00", is_available=True)
    assert _check(instructor_client, ids, day, "12:00", "13:00") is True


def test_end_must_be_after_start(instructor_client, next_week):
    r = _block(instructor_client, next_week.date(), "13:00", "12:00")
    assert r.status_code == 400
    assert r.json["error"] == "End time must be after start time."


def test_max_lessons_per_day(admin_client, instructor_client, ids, next_week, credited):
    admin_client.patch(f"/api/instructors/{ids['instructor_id']}", json={"max_lessons_per_day": 1})
    r = instructor_client.post(
        "/api/lessons",
        json={"student_id": ids["student_id"], "scheduled_at": next_week.isoformat()},
    )
    assert r.status_code == 201
    day = next_week.date()
    assert _check(instructor_client, ids, day, "15:00", "16:00") is False
    assert _check(instructor_client, ids, day + timedelta(days=1), "15:00", "16:00") is True


def test_list_grouped_by_date(instructor_client, next_week):
    day = next_week.date()
    _block(instructor_client, day + timedelta(days=1), "09:00", "10:00")
    _block(instructor_client, day, "15:00", "16:00")
    _block(instructor_client, day, "09:00", "10:00")

    r = instructor_client.get("/api/availability")
    entries = r.json["entries"]
    assert [(e["date"], e["start_time"]) for e in entries] == [
        (day.isoformat(), "09:00"),
        (day.isoformat(), "15:00"),
        ((day + timedelta(days=1)).isoformat(), "09:00"),
    ]
    assert list(r.json["by_date"]) == [day.isoformat(), (day + timedelta(days=1)).isoformat()]


def test_past_entries_are_hidden(instructor_client):
    _block(instructor_client, date.today() - timedelta(days=3), "09:00", "10:00")
    assert instructor_client.get("/api/availability").json["entries"] == []


def test_students_see_agenda_but_cannot_edit(student_client, instructor_client, next_week):
    _block(instructor_client, next_week.date(), "09:00", "10:00")
    assert len(student_client.get("/api/availability").json["entries"]) == 1
    r = _block(student_client, next_week.date(), "11:00", "12:00")
    assert r.status_code == 403


def test_only_owner_deletes(admin_client, instructor_client, next_week, login_as):
    entry = _block(instructor_client, next_week.date(), "09:00", "10:00").json["entry"]
    admin_client.post("/api/instructors", json={"email": "i2@example.com", "password": "secret1", "full_name": "Other"})
    other = login_as("i2@example.com", "secret1")
    assert other.delete(f"/api/availability/{entry['id']}").status_code == 403
    assert instructor_client.delete(f"/api/availability/{entry['id']}").status_code == 200


def test_service_check_ignores_cancelled_lessons(app, instructor_client, ids, next_week, credited):
    lesson = instructor_client.post(
        "/api/lessons",
        json={"student_id": ids["student_id"], "scheduled_at": next_week.isoformat()},
    ).json["lesson"]
    instructor_client.post(f"/api/lessons/{lesson['id']}/status", json={"status": "cancelled"})
    with session_scope(app) as s:
        assert is_instructor_available(s, ids["instructor_id"], next_week.date(), time(10, 0), time(11, 0)) is True


def test_lesson_window_cuts_at_midnight(next_week):
    late = next_week.replace(hour=23, minute=30)
    day, start, end = lesson_window(late, 60)
    assert day == late.date()
    assert start == time(23, 30)
    assert end == time(23, 59, 59)


def test_lesson_running_past_midnight_blocks_next_morning(instructor_client, ids, next_week, credited):
    late = next_week.replace(hour=23, minute=30) - timedelta(days=1)
    r = instructor_client.post(
        "/api/lessons",
        json={"student_id": ids["student_id"], "scheduled_at": late.isoformat(), "duration_minutes": 90},
    )
    assert r.status_code == 201

    day = next_week.date()
    assert _check(instructor_client, ids, day, "00:00", "00:30") is False
    assert _check(instructor_client, ids, day, "01:00", "02:00") is True
