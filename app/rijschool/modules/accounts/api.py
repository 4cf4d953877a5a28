from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission
from app.rijschool.utils import request_payload

from .service import (
    create_instructor_account,
    create_student_account,
    delete_student,
    get_instructor,
    get_student,
    list_instructors,
    list_students,
    students_with_packages,
    update_instructor,
    update_own_profile,
    update_student,
)

bp = Blueprint("accounts", __name__)


# ---------- Own profile ----------
@bp.get("/profile")
@require_permission("profile.edit")
def profile_get(ctx: AuthContext):
    return jsonify({"profile": ctx.profile.to_dict() if ctx.profile else None})


@bp.patch("/profile")
@require_permission("profile.edit")
def profile_update(ctx: AuthContext):
    s = db_session()
    profile = update_own_profile(s, ctx, request_payload())
    s.commit()
    return jsonify({"profile": profile.to_dict()})


# ---------- Students ----------
@bp.get("/students")
@require_permission("students.view")
def students_list(ctx: AuthContext):
    s = db_session()
    search = (request.args.get("q") or "").strip()
    students = list_students(s, search=search or None)
    return jsonify({"students": [st.to_dict() for st in students]})


@bp.post("/students")
@require_permission("students.create")
def students_create(ctx: AuthContext):
    s = db_session()
    payload = request_payload()
    student = create_student_account(
        s,
        email=payload.get("email") or "",
        password=payload.get("password") or "",
        full_name=payload.get("full_name") or "",
        phone=payload.get("phone"),
        license_type=payload.get("license_type"),
        actor=ctx,
    )
    s.commit()
    current_app.logger.info("Student account created id=%s by user=%s", student.id, ctx.user.id)
    return jsonify({"student": student.to_dict()}), 201


@bp.get("/students/overview")
@require_permission("students.manage")
def students_overview(ctx: AuthContext):
    s = db_session()
    return jsonify({"students": students_with_packages(s)})


@bp.get("/students/<int:student_id>")
@require_permission("students.view")
def student_detail(ctx: AuthContext, student_id: int):
    s = db_session()
    return jsonify({"student": get_student(s, student_id).to_dict()})


@bp.patch("/students/<int:student_id>")
@require_permission("students.manage")
def student_update(ctx: AuthContext, student_id: int):
    s = db_session()
    student = update_student(s, get_student(s, student_id), request_payload(), ctx)
    s.commit()
    return jsonify({"student": student.to_dict()})


@bp.delete("/students/<int:student_id>")
@require_permission("students.manage")
def student_delete(ctx: AuthContext, student_id: int):
    s = db_session()
    delete_student(s, get_student(s, student_id), ctx)
    s.commit()
    return jsonify({"ok": True})


# ---------- Instructors ----------
@bp.get("/instructors")
@require_permission("instructors.view")
def instructors_list(ctx: AuthContext):
    s = db_session()
    return jsonify({"instructors": [i.to_dict() for i in list_instructors(s)]})


@bp.post("/instructors")
@require_permission("instructors.manage")
def instructors_create(ctx: AuthContext):
    s = db_session()
    payload = request_payload()
    instructor = create_instructor_account(
        s,
        email=payload.get("email") or "",
        password=payload.get("password") or "",
        full_name=payload.get("full_name") or "",
        phone=payload.get("phone"),
        specializations=payload.get("specializations"),
        max_lessons_per_day=payload.get("max_lessons_per_day"),
        actor=ctx,
    )
    s.commit()
    return jsonify({"instructor": instructor.to_dict()}), 201


@bp.get("/instructors/<int:instructor_id>")
@require_permission("instructors.view")
def instructor_detail(ctx: AuthContext, instructor_id: int):
    s = db_session()
    return jsonify({"instructor": get_instructor(s, instructor_id).to_dict()})


@bp.patch("/instructors/<int:instructor_id>")
@require_permission("instructors.manage")
def instructor_update(ctx: AuthContext, instructor_id: int):
    s = db_session()
    instructor = update_instructor(s, get_instructor(s, instructor_id), request_payload(), ctx)
    s.commit()
    return jsonify({"instructor": instructor.to_dict()})
