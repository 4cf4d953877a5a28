from __future__ import annotations

from flask import Blueprint, jsonify

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission
from app.rijschool.utils import request_payload

from .service import give_feedback, list_feedback

bp = Blueprint("feedback", __name__)


@bp.get("/feedback")
@require_permission("feedback.view")
def feedback_list(ctx: AuthContext):
    s = db_session()
    return jsonify({"feedback": [f.to_dict() for f in list_feedback(s, ctx)]})


@bp.post("/lessons/<int:lesson_id>/feedback")
@require_permission("feedback.give")
def feedback_create(ctx: AuthContext, lesson_id: int):
    s = db_session()
    feedback = give_feedback(s, ctx, lesson_id, request_payload())
    s.commit()
    return jsonify({"feedback": feedback.to_dict()}), 201
