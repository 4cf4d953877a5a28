"""
Function endpoints with the request/response shapes the frontend already uses.

Unlike the ``/api`` blueprints these map every service error to 400 and keep
``{"error": ...}`` / ``{"success": true, ...}`` bodies.
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.errors import ServiceError
from app.rijschool.modules.accounts.service import create_student_account
from app.rijschool.rbac import require_permission
from app.rijschool.seed import seed_demo_users

bp = Blueprint("functions", __name__)


@bp.post("/create-student")
@require_permission("students.create")
def create_student(ctx: AuthContext):
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"error": "Invalid JSON in request body"}), 400

    s = db_session()
    try:
        student = create_student_account(
            s,
            email=body.get("email") or "",
            password=body.get("password") or "",
            full_name=body.get("full_name") or "",
            phone=body.get("phone"),
            license_type=body.get("license_type"),
            actor=ctx,
        )
        s.commit()
    except ServiceError as e:
        s.rollback()
        return jsonify({"error": e.message}), 400
    except Exception:
        s.rollback()
        current_app.logger.exception("create-student failed")
        return jsonify({"error": "Internal server error"}), 500

    user = student.profile.user
    current_app.logger.info("Student created via function endpoint: %s", user.email)
    return jsonify(
        {
            "success": True,
            "user_id": user.id,
            "email": user.email,
            "message": "Student account created.",
        }
    )


@bp.post("/seed-test-users")
def seed_test_users():
    if not current_app.config.get("ALLOW_DEMO_SEED"):
        return jsonify({"error": "Seeding demo users is disabled."}), 403

    s = db_session()
    results = seed_demo_users(s, password=current_app.config["DEMO_PASSWORD"])
    s.commit()
    current_app.logger.info("Demo users seeded: %s", [r["email"] for r in results if r["ok"]])
    return jsonify({"results": results})
