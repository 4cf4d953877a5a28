from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission
from app.rijschool.utils import parse_bool, request_payload

from .service import create_package, delete_package, get_package, list_packages, update_package

bp = Blueprint("packages", __name__)


@bp.get("/packages")
@require_permission("packages.view")
def packages_list(ctx: AuthContext):
    s = db_session()
    include_inactive = ctx.has_permission("packages.manage") and parse_bool(request.args.get("all"))
    packages = list_packages(s, include_inactive=include_inactive)
    return jsonify({"packages": [p.to_dict() for p in packages]})


@bp.post("/packages")
@require_permission("packages.manage")
def packages_create(ctx: AuthContext):
    s = db_session()
    package = create_package(s, request_payload(), ctx)
    s.commit()
    return jsonify({"package": package.to_dict()}), 201


@bp.patch("/packages/<int:package_id>")
@require_permission("packages.manage")
def package_update(ctx: AuthContext, package_id: int):
    s = db_session()
    package = update_package(s, get_package(s, package_id), request_payload(), ctx)
    s.commit()
    return jsonify({"package": package.to_dict()})


@bp.delete("/packages/<int:package_id>")
@require_permission("packages.manage")
def package_delete(ctx: AuthContext, package_id: int):
    s = db_session()
    outcome = delete_package(s, get_package(s, package_id), ctx)
    s.commit()
    return jsonify({"ok": True, "outcome": outcome})
