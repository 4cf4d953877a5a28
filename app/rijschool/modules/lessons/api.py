from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.errors import NotFound
from app.rijschool.modules.accounts.service import get_student
from app.rijschool.rbac import require_permission
from app.rijschool.utils import parse_date, parse_int, request_payload

from .service import (
    delete_lesson,
    get_lesson,
    lesson_balance,
    lessons_today,
    list_lessons,
    schedule_lesson,
    update_lesson_status,
    upcoming_lessons,
)

bp = Blueprint("lessons", __name__)


@bp.get("/lessons")
@require_permission("lessons.view")
def lessons_list(ctx: AuthContext):
    s = db_session()
    lessons = list_lessons(
        s,
        ctx,
        status=(request.args.get("status") or "").strip() or None,
        day=parse_date(request.args.get("date"), field="date"),
    )
    return jsonify({"lessons": [lesson.to_dict() for lesson in lessons]})


@bp.get("/lessons/today")
@require_permission("lessons.view")
def lessons_today_list(ctx: AuthContext):
    s = db_session()
    return jsonify({"lessons": [lesson.to_dict() for lesson in lessons_today(s, ctx)]})


@bp.get("/lessons/upcoming")
@require_permission("lessons.view")
def lessons_upcoming(ctx: AuthContext):
    s = db_session()
    limit = parse_int(request.args.get("limit"), field="limit") or 5
    limit = max(1, min(limit, 50))
    return jsonify({"lessons": [lesson.to_dict() for lesson in upcoming_lessons(s, ctx, limit=limit)]})


@bp.post("/lessons")
@require_permission("lessons.schedule")
def lessons_create(ctx: AuthContext):
    s = db_session()
    lesson = schedule_lesson(s, ctx, request_payload())
    s.commit()
    return jsonify({"lesson": lesson.to_dict()}), 201


@bp.get("/lessons/<int:lesson_id>")
@require_permission("lessons.view")
def lesson_detail(ctx: AuthContext, lesson_id: int):
    s = db_session()
    return jsonify({"lesson": get_lesson(s, ctx, lesson_id).to_dict()})


@bp.post("/lessons/<int:lesson_id>/status")
@require_permission("lessons.update")
def lesson_status(ctx: AuthContext, lesson_id: int):
    s = db_session()
    payload = request_payload()
    lesson = update_lesson_status(s, ctx, get_lesson(s, ctx, lesson_id), payload.get("status"), payload.get("notes"))
    s.commit()
    return jsonify({"lesson": lesson.to_dict()})


@bp.delete("/lessons/<int:lesson_id>")
@require_permission("lessons.delete")
def lesson_delete(ctx: AuthContext, lesson_id: int):
    s = db_session()
    delete_lesson(s, ctx, get_lesson(s, ctx, lesson_id))
    s.commit()
    return jsonify({"ok": True})


@bp.get("/students/<int:student_id>/balance")
@require_permission("lessons.view")
def student_balance(ctx: AuthContext, student_id: int):
    s = db_session()
    if ctx.is_student and ctx.student_id != student_id:
        raise NotFound("Student not found.")
    return jsonify({"balance": lesson_balance(s, get_student(s, student_id))})
