"""Tests for the database bootstrap script."""
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash

from app.rijschool.models import Role, User
from scripts.init_db import init_db


def test_init_db_is_idempotent(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'boot.db'}"
    monkeypatch.setenv("ADMIN_EMAIL", " Owner@Rijschool.pro ")
    monkeypatch.setenv("ADMIN_PASSWORD", "first-password")
    init_db(database_url=db_url)

    monkeypatch.setenv("ADMIN_PASSWORD", "second-password")
    init_db(database_url=db_url)

    engine = create_engine(db_url, future=True)
    try:
        with Session(engine) as s:
            assert sorted(r.key for r in s.query(Role).all()) == ["admin", "instructor", "student"]
            users = s.query(User).all()
            assert [u.email for u in users] == ["owner@rijschool.pro"]
            assert users[0].role_keys == {"admin"}
            # An existing admin keeps its password.
            assert check_password_hash(users[0].password_hash, "first-password")
    finally:
        engine.dispose()
