from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission
from app.rijschool.utils import request_payload

from .service import create_lesson_request, list_lesson_requests, respond_to_request

bp = Blueprint("lesson_requests", __name__)


@bp.get("/lesson-requests")
@require_permission("requests.view")
def requests_list(ctx: AuthContext):
    s = db_session()
    reqs = list_lesson_requests(s, ctx, status=(request.args.get("status") or "").strip() or None)
    return jsonify({"lesson_requests": [r.to_dict() for r in reqs]})


@bp.post("/lesson-requests")
@require_permission("requests.create")
def requests_create(ctx: AuthContext):
    s = db_session()
    req = create_lesson_request(s, ctx, request_payload())
    s.commit()
    return jsonify({"lesson_request": req.to_dict()}), 201


@bp.post("/lesson-requests/<int:request_id>/respond")
@require_permission("requests.respond")
def request_respond(ctx: AuthContext, request_id: int):
    s = db_session()
    payload = request_payload()
    req, lesson = respond_to_request(s, ctx, request_id, payload.get("status"), payload.get("instructor_notes"))
    s.commit()
    return jsonify({"lesson_request": req.to_dict(), "lesson": lesson.to_dict() if lesson else None})
