from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from app.rijschool.audit import record_event
from app.rijschool.errors import Conflict, NotFound, ValidationError
from app.rijschool.utils import clean_str, parse_bool, parse_int

from .models import Car

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext


def normalize_plate(raw: object) -> str:
    return (clean_str(raw) or "").upper()


def validate_car_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate car creation/update payload. Returns list of errors."""
    errors = []
    for field, label in (("license_plate", "License plate"), ("brand", "Brand"), ("model", "Model")):
        if partial and field not in payload:
            continue
        if not clean_str(payload.get(field)):
            errors.append(f"{label} is required.")
    if payload.get("year") not in (None, ""):
        year = parse_int(payload.get("year"), field="year")
        if year is not None and not (1900 <= year <= date.today().year + 1):
            errors.append("Year is out of range.")
    return errors


def _check_plate_unique(s: "Session", plate: str, exclude_id: int | None = None) -> None:
    q = s.query(Car).filter(Car.license_plate == plate)
    if exclude_id is not None:
        q = q.filter(Car.id != exclude_id)
    if q.first():
        raise Conflict(f"A car with license plate {plate} already exists.")


def list_cars(s: "Session", *, available_only: bool = False) -> list[Car]:
    q = s.query(Car)
    if available_only:
        q = q.filter(Car.is_available.is_(True))
    return q.order_by(Car.license_plate.asc()).all()


def get_car(s: "Session", car_id: int) -> Car:
    car = s.get(Car, car_id)
    if not car:
        raise NotFound("Car not found.")
    return car


def create_car(s: "Session", payload: dict, ctx: "AuthContext") -> Car:
    errors = validate_car_payload(payload)
    if errors:
        raise ValidationError(errors[0], details=errors)
    plate = normalize_plate(payload.get("license_plate"))
    _check_plate_unique(s, plate)

    now = datetime.utcnow()
    car = Car(
        license_plate=plate,
        brand=clean_str(payload.get("brand")),
        model=clean_str(payload.get("model")),
        year=parse_int(payload.get("year"), field="year"),
        is_available=parse_bool(payload.get("is_available"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(car)
    s.flush()

    record_event(
        s,
        actor=ctx,
        action="car.create",
        entity_type="Car",
        entity_id=str(car.id),
        metadata={"license_plate": car.license_plate},
    )
    return car


def update_car(s: "Session", car: Car, payload: dict, ctx: "AuthContext") -> Car:
    errors = validate_car_payload(payload, partial=True)
    if errors:
        raise ValidationError(errors[0], details=errors)

    changes = {}
    if "license_plate" in payload:
        plate = normalize_plate(payload.get("license_plate"))
        if plate != car.license_plate:
            _check_plate_unique(s, plate, exclude_id=car.id)
            changes["license_plate"] = {"old": car.license_plate, "new": plate}
            car.license_plate = plate
    for field in ("brand", "model"):
        if field in payload:
            value = clean_str(payload.get(field))
            if value != getattr(car, field):
                changes[field] = {"old": getattr(car, field), "new": value}
                setattr(car, field, value)
    if "year" in payload:
        year = parse_int(payload.get("year"), field="year")
        if year != car.year:
            changes["year"] = {"old": car.year, "new": year}
            car.year = year
    if "is_available" in payload:
        available = parse_bool(payload.get("is_available"))
        if available != car.is_available:
            changes["is_available"] = {"old": car.is_available, "new": available}
            car.is_available = available

    car.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=ctx,
        action="car.edit",
        entity_type="Car",
        entity_id=str(car.id),
        metadata={"license_plate": car.license_plate, "changes": changes},
    )
    return car


def delete_car(s: "Session", car: Car, ctx: "AuthContext") -> None:
    from app.rijschool.modules.lessons.models import Lesson

    # Lessons keep their history; detach the car instead of blocking the delete.
    s.query(Lesson).filter(Lesson.car_id == car.id).update({Lesson.car_id: None}, synchronize_session=False)
    record_event(
        s,
        actor=ctx,
        action="car.delete",
        entity_type="Car",
        entity_id=str(car.id),
        metadata={"license_plate": car.license_plate},
    )
    s.delete(car)
