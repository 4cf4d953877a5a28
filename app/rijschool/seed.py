"""
Idempotent seeding of roles, permissions and accounts.

Used by ``scripts/init_db.py``, the seed-test-users function endpoint and
the test suite.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.rijschool.models import Permission, Profile, Role, User
from app.rijschool.rbac import PERMISSIONS, ROLE_NAMES, ROLE_PERMISSIONS

logger = logging.getLogger(__name__)

DEMO_ACCOUNTS = (
    {"email": "admin@rijschool.pro", "full_name": "Rijschool Admin", "role": "admin"},
    {"email": "instructor@rijschool.pro", "full_name": "Rijinstructeur", "role": "instructor"},
    {"email": "student@rijschool.pro", "full_name": "Leerling", "role": "student"},
)


def ensure_permission(s: Session, key: str) -> Permission:
    p = s.query(Permission).filter(Permission.key == key).one_or_none()
    if not p:
        p = Permission(key=key, name=PERMISSIONS.get(key, key))
        s.add(p)
    return p


def ensure_role(s: Session, key: str) -> Role:
    """Fetch the role, creating it and attaching its catalog permissions if needed."""
    if key not in ROLE_PERMISSIONS:
        raise KeyError(f"Unknown role: {key}")
    role = s.query(Role).filter(Role.key == key).one_or_none()
    if not role:
        role = Role(key=key, name=ROLE_NAMES[key])
        s.add(role)
    for perm_key in ROLE_PERMISSIONS[key]:
        p = ensure_permission(s, perm_key)
        if p not in role.permissions:
            role.permissions.append(p)
    s.flush()
    return role


def seed_roles(s: Session) -> dict[str, Role]:
    return {key: ensure_role(s, key) for key in ROLE_PERMISSIONS}


def ensure_admin(s: Session, *, email: str, password: str, full_name: str = "Administrator") -> User:
    """
    Create the admin account if missing.
    Does NOT overwrite an existing user's password.
    """
    email = email.strip().lower()
    role_admin = ensure_role(s, "admin")
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user:
        user = User(email=email, password_hash=generate_password_hash(password), is_active=True)
        s.add(user)
    if role_admin not in user.roles:
        user.roles.append(role_admin)
    if user.profile is None:
        user.profile = Profile(email=email, full_name=full_name)
    s.flush()
    return user


def seed_demo_users(s: Session, *, password: str) -> list[dict]:
    """
    Create the three fixed demo accounts. Each account is its own savepoint so
    one failure (e.g. it already exists) leaves the others intact.
    """
    from app.rijschool.errors import ServiceError
    from app.rijschool.modules.accounts.service import create_instructor_account, create_student_account

    seed_roles(s)
    results: list[dict] = []
    for acct in DEMO_ACCOUNTS:
        try:
            with s.begin_nested():
                if acct["role"] == "admin":
                    if s.query(User).filter(User.email == acct["email"]).one_or_none():
                        raise ServiceError("A user with this email address already exists.")
                    user = ensure_admin(s, email=acct["email"], password=password, full_name=acct["full_name"])
                elif acct["role"] == "instructor":
                    user = create_instructor_account(
                        s, email=acct["email"], password=password, full_name=acct["full_name"]
                    ).profile.user
                else:
                    user = create_student_account(
                        s, email=acct["email"], password=password, full_name=acct["full_name"]
                    ).profile.user
            results.append({"email": acct["email"], "id": user.id, "ok": True, "error": None})
        except ServiceError as e:
            logger.warning("Demo account %s not created: %s", acct["email"], e.message)
            results.append({"email": acct["email"], "id": None, "ok": False, "error": e.message})
    return results
