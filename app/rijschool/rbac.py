from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.rijschool.context import AuthContext
from app.rijschool.models import User

PERMISSIONS: dict[str, str] = {
    "dashboard.view": "Dashboard: view",
    "calendar.view": "Calendar: view",
    "profile.edit": "Profile: edit own",
    "students.view": "Students: view",
    "students.create": "Students: create accounts",
    "students.manage": "Students: edit/delete",
    "instructors.view": "Instructors: view",
    "instructors.manage": "Instructors: create/edit",
    "cars.view": "Cars: view",
    "cars.manage": "Cars: create/edit/delete",
    "packages.view": "Packages: view",
    "packages.manage": "Packages: create/edit/delete",
    "lessons.view": "Lessons: view",
    "lessons.schedule": "Lessons: schedule",
    "lessons.update": "Lessons: update status",
    "lessons.delete": "Lessons: delete",
    "requests.view": "Lesson requests: view",
    "requests.create": "Lesson requests: create",
    "requests.respond": "Lesson requests: accept/reject",
    "availability.view": "Availability: view",
    "availability.manage": "Availability: manage own",
    "payments.view": "Payments: view",
    "payments.submit": "Payments: submit proof",
    "payments.process": "Payments: process proofs",
    "feedback.view": "Feedback: view",
    "feedback.give": "Feedback: give",
}

_SHARED = (
    "dashboard.view",
    "calendar.view",
    "profile.edit",
    "instructors.view",
    "packages.view",
    "lessons.view",
    "requests.view",
    "feedback.view",
    "availability.view",
)

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "admin": tuple(PERMISSIONS),
    "instructor": _SHARED
    + (
        "students.view",
        "students.create",
        "cars.view",
        "lessons.schedule",
        "lessons.update",
        "requests.respond",
        "availability.manage",
        "feedback.give",
    ),
    "student": _SHARED
    + (
        "requests.create",
        "payments.view",
        "payments.submit",
    ),
}

ROLE_NAMES = {
    "admin": "Administrator",
    "instructor": "Instructor",
    "student": "Student",
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def is_admin(user: User | None) -> bool:
    return bool(user and user.is_active and "admin" in user.role_keys)


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Guard a view and pass the caller's AuthContext as its first argument.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            ctx: AuthContext | None = getattr(g, "auth", None)
            if ctx is None or not ctx.user.is_active:
                return jsonify({"error": "Authentication required."}), 401
            if not ctx.has_permission(permission_key):
                g.missing_permission = permission_key
                return jsonify({"error": "Forbidden.", "missing_permission": permission_key}), 403
            return fn(ctx, *args, **kwargs)

        return wrapped

    return decorator
