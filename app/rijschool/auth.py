from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.rijschool.audit import record_event
from app.rijschool.context import build_context
from app.rijschool.db import db_session
from app.rijschool.models import User
from app.rijschool.utils import request_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    # Drop IPs whose newest attempt is outside the window.
    for key in [k for k, times in _login_attempts.items() if not times or times[-1] <= cutoff]:
        del _login_attempts[key]
    recent = [t for t in _login_attempts.get(ip, ()) if t > cutoff]
    if recent:
        _login_attempts[ip] = recent
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie and builds g.auth,
    the AuthContext handed to every guarded view.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    g.current_user = None
    g.auth = None

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        return
    if not user or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user
    g.auth = build_context(user, request_id=g.request_id)


@bp.post("/login")
def login_post():
    payload = request_payload()
    email = (str(payload.get("email") or "")).strip().lower()
    password = str(payload.get("password") or "")
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            return jsonify({"error": "Invalid credentials."}), 401

        from app.rijschool.modules.accounts.service import ensure_profile

        ensure_profile(s, user)
        session.clear()
        session["user_id"] = user.id
        session.permanent = True
        _login_attempts.pop(ip, None)
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return jsonify({"user": build_context(user, request_id=g.request_id).to_dict()})
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return jsonify({"ok": True})


@bp.get("/me")
def me():
    user = getattr(g, "current_user", None)
    if user is None:
        return jsonify({"error": "Authentication required."}), 401
    s = db_session()
    from app.rijschool.modules.accounts.service import ensure_profile

    ensure_profile(s, user)
    s.commit()
    return jsonify({"user": build_context(user, request_id=g.request_id).to_dict()})
