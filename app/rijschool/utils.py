from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation

from app.rijschool.errors import ValidationError


def clean_str(raw: object) -> str | None:
    """Strip a form/JSON value; empty becomes None."""
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def parse_date(s: str | None, *, field: str = "date") -> date | None:
    """Parse YYYY-MM-DD date string."""
    if isinstance(s, date) and not isinstance(s, datetime):
        return s
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        raise ValidationError(f"Invalid {field}: expected YYYY-MM-DD.") from None


def parse_datetime(s: str | None, *, field: str = "datetime") -> datetime | None:
    """Parse an ISO-8601 timestamp; timezone offsets are converted to naive UTC."""
    if isinstance(s, datetime):
        return s
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"Invalid {field}: expected ISO-8601 timestamp.") from None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_time(s: str | None, *, field: str = "time") -> time | None:
    """Parse HH:MM (or HH:MM:SS)."""
    if isinstance(s, time):
        return s
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    try:
        return time.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"Invalid {field}: expected HH:MM.") from None


def parse_int(s: object, *, field: str = "value") -> int | None:
    """Parse integer string."""
    if s is None or isinstance(s, bool):
        return None
    if isinstance(s, int):
        return s
    text = str(s).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"Invalid {field}: expected an integer.") from None


def parse_decimal(s: object, *, field: str = "amount") -> Decimal | None:
    if s is None or isinstance(s, bool):
        return None
    text = str(s).strip()
    if not text:
        return None
    try:
        return Decimal(text).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError(f"Invalid {field}: expected a number.") from None


def parse_bool(raw: object, default: bool = False) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


def iso(value: date | datetime | time | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value.isoformat()


def money(value: Decimal | float | None) -> float | None:
    if value is None:
        return None
    return float(value)


def request_payload() -> dict:
    """JSON body, falling back to form fields."""
    from flask import request

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()
