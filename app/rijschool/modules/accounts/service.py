"""
Student and instructor accounts.

An account is a User (identity + role), a Profile and a Student or
Instructor row. All of them are written in the caller's transaction and
flushed together, so a failure at any step leaves no partial account behind
once the caller rolls back.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.rijschool.audit import record_event
from app.rijschool.constants import DEFAULT_LICENSE_TYPE, DEFAULT_MAX_LESSONS_PER_DAY, MIN_PASSWORD_LENGTH
from app.rijschool.errors import Conflict, NotFound, ValidationError
from app.rijschool.models import Profile, User
from app.rijschool.seed import ensure_role
from app.rijschool.utils import clean_str, parse_bool, parse_int

from .models import Instructor, Student

if TYPE_CHECKING:
    from app.rijschool.context import AuthContext

logger = logging.getLogger(__name__)


def normalize_email(raw: object) -> str:
    return (clean_str(raw) or "").lower()


def validate_account_payload(payload: dict) -> list[str]:
    """Validate account creation payload. Returns list of errors."""
    errors = []
    for field in ("email", "password", "full_name"):
        if payload.get(field) is not None and not isinstance(payload.get(field), str):
            errors.append(f"{field} must be a string.")
    if errors:
        return errors
    email = normalize_email(payload.get("email"))
    password = payload.get("password") or ""
    full_name = clean_str(payload.get("full_name"))
    if not email or not password or not full_name:
        errors.append("Email, password and full name are required.")
    elif "@" not in email:
        errors.append("Email address is invalid.")
    if password and len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    return errors


def _create_identity(s: Session, payload: dict, role_key: str) -> tuple[User, Profile]:
    errors = validate_account_payload(payload)
    if errors:
        raise ValidationError(errors[0], details=errors)

    email = normalize_email(payload.get("email"))
    if s.query(User).filter(User.email == email).one_or_none():
        raise Conflict("A user with this email address already exists.")

    now = datetime.utcnow()
    user = User(email=email, password_hash=generate_password_hash(payload["password"]), is_active=True)
    user.roles.append(ensure_role(s, role_key))
    profile = Profile(
        user=user,
        email=email,
        full_name=clean_str(payload.get("full_name")) or email,
        phone=clean_str(payload.get("phone")),
        address=clean_str(payload.get("address")),
        created_at=now,
        updated_at=now,
    )
    s.add_all([user, profile])
    return user, profile


def _flush_account(s: Session, email: str) -> None:
    try:
        s.flush()
    except IntegrityError as e:
        logger.warning("Account flush failed for %s: %s", email, e.orig)
        raise Conflict("A user with this email address already exists.") from e


def create_student_account(
    s: Session,
    *,
    email: str,
    password: str,
    full_name: str,
    phone: str | None = None,
    license_type: str | None = None,
    actor: "AuthContext | None" = None,
) -> Student:
    """Create user + profile + student in one unit of work."""
    payload = {"email": email, "password": password, "full_name": full_name, "phone": phone}
    user, profile = _create_identity(s, payload, "student")
    now = datetime.utcnow()
    student = Student(
        profile=profile,
        license_type=(clean_str(license_type) or DEFAULT_LICENSE_TYPE).upper(),
        theory_exam_passed=False,
        lessons_remaining=0,
        created_at=now,
        updated_at=now,
    )
    s.add(student)
    _flush_account(s, user.email)

    record_event(
        s,
        actor=actor,
        action="student.create",
        entity_type="Student",
        entity_id=str(student.id),
        metadata={"email": user.email, "license_type": student.license_type},
    )
    return student


def create_instructor_account(
    s: Session,
    *,
    email: str,
    password: str,
    full_name: str,
    phone: str | None = None,
    specializations: list[str] | None = None,
    max_lessons_per_day: int | None = None,
    actor: "AuthContext | None" = None,
) -> Instructor:
    """Create user + profile + instructor in one unit of work."""
    payload = {"email": email, "password": password, "full_name": full_name, "phone": phone}
    user, profile = _create_identity(s, payload, "instructor")
    now = datetime.utcnow()
    instructor = Instructor(
        profile=profile,
        specializations=_clean_specializations(specializations),
        max_lessons_per_day=_validate_max_per_day(max_lessons_per_day),
        created_at=now,
        updated_at=now,
    )
    s.add(instructor)
    _flush_account(s, user.email)

    record_event(
        s,
        actor=actor,
        action="instructor.create",
        entity_type="Instructor",
        entity_id=str(instructor.id),
        metadata={"email": user.email},
    )
    return instructor


def _clean_specializations(raw: object) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("Specializations must be a list.")
    return [str(x).strip() for x in raw if str(x).strip()]


def _validate_max_per_day(raw: object) -> int:
    value = parse_int(raw, field="max_lessons_per_day")
    if value is None:
        return DEFAULT_MAX_LESSONS_PER_DAY
    if value < 1:
        raise ValidationError("Max lessons per day must be at least 1.")
    return value


def ensure_profile(s: Session, user: User) -> Profile:
    """
    Make sure ``user`` has a profile and the role row that goes with it.
    Users created outside the account flow (seed scripts) get one on first login.
    """
    profile = user.profile
    created = False
    if profile is None:
        now = datetime.utcnow()
        profile = Profile(
            user=user,
            email=user.email,
            full_name=user.email.split("@", 1)[0],
            created_at=now,
            updated_at=now,
        )
        s.add(profile)
        created = True

    role = user.primary_role
    if role == "student" and profile.student is None:
        profile.student = Student(license_type=DEFAULT_LICENSE_TYPE, theory_exam_passed=False, lessons_remaining=0)
        created = True
    elif role == "instructor" and profile.instructor is None:
        profile.instructor = Instructor(specializations=[], max_lessons_per_day=DEFAULT_MAX_LESSONS_PER_DAY)
        created = True

    if created:
        s.flush()
        record_event(s, actor=user, action="profile.ensure", entity_type="Profile", entity_id=str(profile.id))
    return profile


def update_own_profile(s: Session, ctx: "AuthContext", payload: dict) -> Profile:
    profile = s.get(Profile, ctx.profile_id) if ctx.profile_id is not None else None
    if profile is None:
        raise NotFound("Profile not found.")
    changes = _apply_profile_fields(profile, payload)
    if changes:
        record_event(
            s,
            actor=ctx,
            action="profile.edit",
            entity_type="Profile",
            entity_id=str(profile.id),
            metadata={"changes": changes},
        )
    return profile


def _apply_profile_fields(profile: Profile, payload: dict) -> dict:
    changes = {}
    if "full_name" in payload:
        new_name = clean_str(payload.get("full_name"))
        if not new_name:
            raise ValidationError("Full name is required.")
        if new_name != profile.full_name:
            changes["full_name"] = {"old": profile.full_name, "new": new_name}
            profile.full_name = new_name
    for field in ("phone", "address"):
        if field in payload:
            new_value = clean_str(payload.get(field))
            if new_value != getattr(profile, field):
                changes[field] = {"old": getattr(profile, field), "new": new_value}
                setattr(profile, field, new_value)
    if changes:
        profile.updated_at = datetime.utcnow()
    return changes


# ---------- Students ----------


def get_student(s: Session, student_id: int) -> Student:
    student = s.get(Student, student_id)
    if not student:
        raise NotFound("Student not found.")
    return student


def list_students(s: Session, *, search: str | None = None) -> list[Student]:
    q = s.query(Student).join(Profile, Student.profile_id == Profile.id)
    if search:
        like = f"%{search}%"
        q = q.filter(Profile.full_name.ilike(like) | Profile.email.ilike(like))
    return q.order_by(Profile.full_name.asc()).all()


def update_student(s: Session, student: Student, payload: dict, ctx: "AuthContext") -> Student:
    """Admin edit of a student's profile and licence details."""
    changes = _apply_profile_fields(student.profile, payload)

    if "license_type" in payload:
        new_license = (clean_str(payload.get("license_type")) or DEFAULT_LICENSE_TYPE).upper()
        if new_license != student.license_type:
            changes["license_type"] = {"old": student.license_type, "new": new_license}
            student.license_type = new_license

    if "theory_exam_passed" in payload:
        new_passed = parse_bool(payload.get("theory_exam_passed"))
        if new_passed != student.theory_exam_passed:
            changes["theory_exam_passed"] = {"old": student.theory_exam_passed, "new": new_passed}
            student.theory_exam_passed = new_passed

    student.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=ctx,
        action="student.edit",
        entity_type="Student",
        entity_id=str(student.id),
        metadata={"changes": changes},
    )
    return student


def delete_student(s: Session, student: Student, ctx: "AuthContext") -> None:
    """Delete the whole account; lessons, requests and payment proofs cascade."""
    user = student.profile.user
    record_event(
        s,
        actor=ctx,
        action="student.delete",
        entity_type="Student",
        entity_id=str(student.id),
        metadata={"email": user.email},
    )
    s.delete(user)


def students_with_packages(s: Session) -> list[dict]:
    """Every student with their payment proofs and the package bought (admin overview)."""
    from app.rijschool.modules.payments.models import PaymentProof

    students = s.query(Student).order_by(Student.created_at.desc()).all()
    proofs = s.query(PaymentProof).order_by(PaymentProof.submitted_at.desc()).all()
    by_student: dict[int, list] = {}
    for p in proofs:
        by_student.setdefault(p.student_id, []).append(p)

    out = []
    for st in students:
        row = st.to_dict()
        row["payment_proofs"] = [p.to_dict(include_student=False) for p in by_student.get(st.id, [])]
        out.append(row)
    return out


# ---------- Instructors ----------


def get_instructor(s: Session, instructor_id: int) -> Instructor:
    instructor = s.get(Instructor, instructor_id)
    if not instructor:
        raise NotFound("Instructor not found.")
    return instructor


def list_instructors(s: Session) -> list[Instructor]:
    return (
        s.query(Instructor)
        .join(Profile, Instructor.profile_id == Profile.id)
        .order_by(Profile.full_name.asc())
        .all()
    )


def update_instructor(s: Session, instructor: Instructor, payload: dict, ctx: "AuthContext") -> Instructor:
    changes = _apply_profile_fields(instructor.profile, payload)

    if "specializations" in payload:
        new_specs = _clean_specializations(payload.get("specializations"))
        if new_specs != list(instructor.specializations or []):
            changes["specializations"] = {"old": instructor.specializations, "new": new_specs}
            instructor.specializations = new_specs

    if "max_lessons_per_day" in payload:
        new_max = _validate_max_per_day(payload.get("max_lessons_per_day"))
        if new_max != instructor.max_lessons_per_day:
            changes["max_lessons_per_day"] = {"old": instructor.max_lessons_per_day, "new": new_max}
            instructor.max_lessons_per_day = new_max

    if "available_hours" in payload:
        hours = payload.get("available_hours")
        if hours is not None and not isinstance(hours, dict):
            raise ValidationError("Available hours must be an object.")
        instructor.available_hours = hours
        changes["available_hours"] = {"new": hours}

    instructor.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=ctx,
        action="instructor.edit",
        entity_type="Instructor",
        entity_id=str(instructor.id),
        metadata={"changes": changes},
    )
    return instructor
