from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.rijschool.context import AuthContext
from app.rijschool.db import db_session
from app.rijschool.rbac import require_permission
from app.rijschool.utils import parse_bool, request_payload

from .service import create_car, delete_car, get_car, list_cars, update_car

bp = Blueprint("cars", __name__)


@bp.get("/cars")
@require_permission("cars.view")
def cars_list(ctx: AuthContext):
    s = db_session()
    cars = list_cars(s, available_only=parse_bool(request.args.get("available")))
    return jsonify({"cars": [c.to_dict() for c in cars]})


@bp.post("/cars")
@require_permission("cars.manage")
def cars_create(ctx: AuthContext):
    s = db_session()
    car = create_car(s, request_payload(), ctx)
    s.commit()
    return jsonify({"car": car.to_dict()}), 201


@bp.patch("/cars/<int:car_id>")
@require_permission("cars.manage")
def car_update(ctx: AuthContext, car_id: int):
    s = db_session()
    car = update_car(s, get_car(s, car_id), request_payload(), ctx)
    s.commit()
    return jsonify({"car": car.to_dict()})


@bp.delete("/cars/<int:car_id>")
@require_permission("cars.manage")
def car_delete(ctx: AuthContext, car_id: int):
    s = db_session()
    delete_car(s, get_car(s, car_id), ctx)
    s.commit()
    return jsonify({"ok": True})
