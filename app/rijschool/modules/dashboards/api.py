from __future__ import annotations

from flask import Blueprint, jsonify

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission

from .service import dashboard_for

bp = Blueprint("dashboards", __name__)


@bp.get("/dashboard")
@require_permission("dashboard.view")
def dashboard(ctx: AuthContext):
    s = db_session()
    return jsonify(dashboard_for(s, ctx))
