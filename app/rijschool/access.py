"""
Row visibility rules.

Admins see every row. Instructors see rows where they are the instructor,
students rows where they are the student. A caller with neither link sees
nothing.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import false

from app.rijschool.errors import NotFound, PermissionDenied

if TYPE_CHECKING:
    from sqlalchemy.orm import Query

    from app.rijschool.context import AuthContext


def scope_query(query: "Query", model: Any, ctx: "AuthContext") -> "Query":
    """Restrict ``query`` over ``model`` (with student_id/instructor_id columns) to the caller."""
    if ctx.is_admin:
        return query
    if ctx.is_instructor and ctx.instructor_id is not None and hasattr(model, "instructor_id"):
        return query.filter(model.instructor_id == ctx.instructor_id)
    if ctx.is_student and ctx.student_id is not None and hasattr(model, "student_id"):
        return query.filter(model.student_id == ctx.student_id)
    return query.filter(false())


def can_see(row: Any, ctx: "AuthContext") -> bool:
    if ctx.is_admin:
        return True
    if ctx.is_instructor and ctx.instructor_id is not None:
        return getattr(row, "instructor_id", None) == ctx.instructor_id
    if ctx.is_student and ctx.student_id is not None:
        return getattr(row, "student_id", None) == ctx.student_id
    return False


def get_visible(s, model: Any, row_id: int, ctx: "AuthContext", *, label: str | None = None):
    """Fetch one row the caller may see; hidden rows look the same as missing ones."""
    row = s.get(model, row_id)
    if row is None or not can_see(row, ctx):
        raise NotFound(f"{label or model.__name__} not found.")
    return row


def require_student(ctx: "AuthContext") -> int:
    if ctx.student_id is None:
        raise PermissionDenied("Only students can do this.")
    return ctx.student_id


def require_instructor(ctx: "AuthContext") -> int:
    if ctx.instructor_id is None:
        raise PermissionDenied("Only instructors can do this.")
    return ctx.instructor_id
