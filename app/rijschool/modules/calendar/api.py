from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission
from app.rijschool.utils import parse_date

from .service import build_week

bp = Blueprint("calendar", __name__)


@bp.get("/calendar")
@require_permission("calendar.view")
def calendar_week(ctx: AuthContext):
    s = db_session()
    anchor = parse_date(request.args.get("week"), field="week") or date.today()
    return jsonify(build_week(s, ctx, anchor))
