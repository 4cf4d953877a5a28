from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.errors import ValidationError
from app.rijschool.rbac import require_permission
from app.rijschool.utils import parse_date, parse_int, parse_time, request_payload

from .service import create_entry, delete_entry, group_by_date, is_instructor_available, list_entries

bp = Blueprint("availability", __name__)


@bp.get("/availability")
@require_permission("availability.view")
def availability_list(ctx: AuthContext):
    s = db_session()
    entries = list_entries(
        s,
        ctx,
        instructor_id=parse_int(request.args.get("instructor_id"), field="instructor_id"),
        from_date=parse_date(request.args.get("from"), field="from"),
        to_date=parse_date(request.args.get("to"), field="to"),
    )
    grouped = group_by_date(entries)
    return jsonify(
        {
            "entries": [e.to_dict() for e in entries],
            "by_date": {day: [e.to_dict() for e in items] for day, items in grouped.items()},
        }
    )


@bp.post("/availability")
@require_permission("availability.manage")
def availability_create(ctx: AuthContext):
    s = db_session()
    entry = create_entry(s, ctx, request_payload())
    s.commit()
    return jsonify({"entry": entry.to_dict()}), 201


@bp.delete("/availability/<int:entry_id>")
@require_permission("availability.manage")
def availability_delete(ctx: AuthContext, entry_id: int):
    s = db_session()
    delete_entry(s, ctx, entry_id)
    s.commit()
    return jsonify({"ok": True})


@bp.get("/availability/check")
@require_permission("availability.view")
def availability_check(ctx: AuthContext):
    s = db_session()
    instructor_id = parse_int(request.args.get("instructor_id"), field="instructor_id")
    day = parse_date(request.args.get("date"), field="date")
    start = parse_time(request.args.get("start_time"), field="start_time")
    end = parse_time(request.args.get("end_time"), field="end_time")
    if instructor_id is None or not day or not start or not end:
        raise ValidationError("instructor_id, date, start_time and end_time are required.")
    if end <= start:
        raise ValidationError("End time must be after start time.")
    available = is_instructor_available(s, instructor_id, day, start, end)
    return jsonify({"instructor_id": instructor_id, "available": available})
