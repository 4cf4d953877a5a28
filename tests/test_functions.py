"""Tests for the /functions endpoints."""


def test_create_student_success(admin_client, login_as):
    r = admin_client.post(
        "/functions/create-student",
        json={"email": "New.Student@Example.com", "password": "secret1", "full_name": "Nieuwe Leerling", "phone": "0612345678"},
    )
    assert r.status_code == 200
    body = r.json
    assert body["success"] is True
    assert body["email"] == "new.student@example.com"
    assert body["message"] == "Student account created."
    assert isinstance(body["user_id"], int)

    login_as("new.student@example.com", "secret1")


def test_create_student_errors_are_400(admin_client):
    r = admin_client.post(
        "/functions/create-student",
        json={"email": "student@example.com", "password": "secret1", "full_name": "Dubbel"},
    )
    assert r.status_code == 400
    assert "error" in r.json

    r = admin_client.post("/functions/create-student", json={"email": "x@example.com", "password": "kort", "full_name": "X"})
    assert r.status_code == 400


def test_create_student_invalid_json(admin_client):
    r = admin_client.post("/functions/create-student", data="{not json", content_type="application/json")
    assert r.status_code == 400
    assert r.json == {"error": "Invalid JSON in request body"}


def test_create_student_requires_permission(student_client, client):
    body = {"email": "x@example.com", "password": "secret1", "full_name": "X"}
    assert student_client.post("/functions/create-student", json=body).status_code == 403
    assert client.post("/functions/create-student", json=body).status_code == 401


def test_seed_test_users(client, app, login_as):
    r = client.post("/functions/seed-test-users")
    assert r.status_code == 200
    results = r.json["results"]
    assert [res["email"] for res in results] == [
        "admin@rijschool.pro",
        "instructor@rijschool.pro",
        "student@rijschool.pro",
    ]
    assert all(res["ok"] for res in results)

    me = login_as("student@rijschool.pro", app.config["DEMO_PASSWORD"]).get("/auth/me").json
    assert me["user"]["role"] == "student"

    # Existing accounts are reported, not duplicated.
    again = client.post("/functions/seed-test-users").json["results"]
    assert [res["ok"] for res in again] == [False, False, False]


def test_seed_disabled(client, app):
    app.config["ALLOW_DEMO_SEED"] = False
    r = client.post("/functions/seed-test-users")
    assert r.status_code == 403


def test_create_student_rejects_non_string_fields(admin_client):
    r = admin_client.post(
        "/functions/create-student",
        json={"email": "n@example.com", "password": 1234567, "full_name": "Nummer"},
    )
    assert r.status_code == 400
    assert r.json == {"error": "password must be a string."}

    r = admin_client.post("/api/students", json={"email": ["n@example.com"], "password": "secret1", "full_name": "Lijst"})
    assert r.status_code == 400
    assert r.json["error"] == "email must be a string."
