from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.rijschool.audit import record_event
from app.rijschool.errors import NotFound, ValidationError
from app.rijschool.utils import clean_str, money, parse_bool, parse_decimal, parse_int

from .models import LessonPackage

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.rijschool.context import AuthContext


def validate_package_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate package creation/update payload. Returns list of errors."""
    errors = []
    if not partial or "name" in payload:
        if not clean_str(payload.get("name")):
            errors.append("Name is required.")
    if not partial or "lessons_count" in payload:
        count = parse_int(payload.get("lessons_count"), field="lessons_count")
        if count is None or count <= 0:
            errors.append("Lessons count must be greater than zero.")
    if not partial or "price" in payload:
        price = parse_decimal(payload.get("price"), field="price")
        if price is None or price < 0:
            errors.append("Price must be zero or more.")
    return errors


def list_packages(s: "Session", *, include_inactive: bool = False) -> list[LessonPackage]:
    q = s.query(LessonPackage)
    if not include_inactive:
        q = q.filter(LessonPackage.is_active.is_(True))
    return q.order_by(LessonPackage.price.asc(), LessonPackage.id.asc()).all()


def get_package(s: "Session", package_id: int) -> LessonPackage:
    package = s.get(LessonPackage, package_id)
    if not package:
        raise NotFound("Lesson package not found.")
    return package


def create_package(s: "Session", payload: dict, ctx: "AuthContext") -> LessonPackage:
    errors = validate_package_payload(payload)
    if errors:
        raise ValidationError(errors[0], details=errors)

    now = datetime.utcnow()
    package = LessonPackage(
        name=clean_str(payload.get("name")),
        lessons_count=parse_int(payload.get("lessons_count"), field="lessons_count"),
        price=parse_decimal(payload.get("price"), field="price"),
        description=clean_str(payload.get("description")),
        is_active=parse_bool(payload.get("is_active"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(package)
    s.flush()

    record_event(
        s,
        actor=ctx,
        action="lesson_package.create",
        entity_type="LessonPackage",
        entity_id=str(package.id),
        metadata={"name": package.name, "lessons_count": package.lessons_count, "price": money(package.price)},
    )
    return package


def update_package(s: "Session", package: LessonPackage, payload: dict, ctx: "AuthContext") -> LessonPackage:
    """Edit a package. Proofs already submitted keep the amount they were created with."""
    errors = validate_package_payload(payload, partial=True)
    if errors:
        raise ValidationError(errors[0], details=errors)

    changes = {}
    new_values = {}
    if "name" in payload:
        new_values["name"] = clean_str(payload.get("name"))
    if "description" in payload:
        new_values["description"] = clean_str(payload.get("description"))
    if "lessons_count" in payload:
        new_values["lessons_count"] = parse_int(payload.get("lessons_count"), field="lessons_count")
    if "price" in payload:
        new_values["price"] = parse_decimal(payload.get("price"), field="price")
    if "is_active" in payload:
        new_values["is_active"] = parse_bool(payload.get("is_active"))

    for field, value in new_values.items():
        old = getattr(package, field)
        if old != value:
            if field == "price":
                changes[field] = {"old": money(old), "new": money(value)}
            else:
                changes[field] = {"old": old, "new": value}
            setattr(package, field, value)

    package.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=ctx,
        action="lesson_package.edit",
        entity_type="LessonPackage",
        entity_id=str(package.id),
        metadata={"name": package.name, "changes": changes},
    )
    return package


def delete_package(s: "Session", package: LessonPackage, ctx: "AuthContext") -> str:
    """
    Remove a package. A package that payment proofs point at is deactivated
    instead, so the proofs keep their package.

    Returns "deactivated" or "deleted".
    """
    from app.rijschool.modules.payments.models import PaymentProof

    referenced = s.query(PaymentProof.id).filter(PaymentProof.lesson_package_id == package.id).first() is not None
    if referenced:
        package.is_active = False
        package.updated_at = datetime.utcnow()
        outcome = "deactivated"
    else:
        s.delete(package)
        outcome = "deleted"

    record_event(
        s,
        actor=ctx,
        action=f"lesson_package.{'deactivate' if referenced else 'delete'}",
        entity_type="LessonPackage",
        entity_id=str(package.id),
        metadata={"name": package.name},
    )
    return outcome
