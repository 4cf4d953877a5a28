from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from app.rijschool import auth as auth_module
from app.rijschool import create_app
from app.rijschool.db import session_scope
from app.rijschool.models import Base
from app.rijschool.modules.accounts.service import create_instructor_account, create_student_account
from app.rijschool.modules.lessons.service import refresh_lessons_remaining
from app.rijschool.modules.packages.models import LessonPackage
from app.rijschool.modules.payments.models import PaymentProof
from app.rijschool.seed import ensure_admin, seed_roles

ADMIN = ("admin@example.com", "pw")
INSTRUCTOR = ("instructor@example.com", "secret1")
STUDENT = ("student@example.com", "secret1")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("ALLOW_DEMO_SEED", "DEMO_PASSWORD", "CORS_ORIGINS"):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        seed_roles(s)
        ensure_admin(s, email=ADMIN[0], password=ADMIN[1], full_name="Ada Admin")
        instructor = create_instructor_account(s, email=INSTRUCTOR[0], password=INSTRUCTOR[1], full_name="Ivo Instructor")
        student = create_student_account(s, email=STUDENT[0], password=STUDENT[1], full_name="Sanne Student")
        app.config["TEST_IDS"] = {"instructor_id": instructor.id, "student_id": student.id}

    return app


@pytest.fixture()
def ids(app):
    return app.config["TEST_IDS"]


def login(client, email, password):
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.json
    return client


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def admin_client(app):
    return login(app.test_client(), *ADMIN)


@pytest.fixture()
def instructor_client(app):
    return login(app.test_client(), *INSTRUCTOR)


@pytest.fixture()
def student_client(app):
    return login(app.test_client(), *STUDENT)


@pytest.fixture()
def next_week():
    """10:00 one week from today."""
    return datetime.combine(date.today() + timedelta(days=7), time(10, 0))


@pytest.fixture()
def login_as(app):
    """Log a fresh test client in as ``email``."""

    def _login(email, password):
        return login(app.test_client(), email, password)

    return _login


def grant_lessons(app, student_id, count):
    """Record an approved payment proof crediting ``count`` lessons."""
    with session_scope(app) as s:
        package = LessonPackage(name=f"{count} lessen", lessons_count=count, price=Decimal("0.00"), is_active=False)
        s.add(package)
        s.flush()
        s.add(
            PaymentProof(
                student_id=student_id,
                lesson_package_id=package.id,
                proof_email="credit@example.com",
                amount=package.price,
                lessons_count=count,
                status="approved",
                lessons_added=True,
                approved_at=datetime.utcnow(),
            )
        )
        refresh_lessons_remaining(s, student_id)


@pytest.fixture()
def credited(app, ids):
    """The seeded student with 20 paid lessons."""
    grant_lessons(app, ids["student_id"], 20)
    return 20
