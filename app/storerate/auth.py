from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.storerate.accounts import change_password, create_user, email_taken, validate_user_payload
from app.storerate.audit import record_event
from app.storerate.constants import ROLE_NORMAL_USER
from app.storerate.db import db_session
from app.storerate.models import User
from app.storerate.rbac import login_required
from app.storerate.security import ensure_csrf_token
from app.storerate.utils import clean_str, error_response, request_payload, utcnow

bp = Blueprint("auth", __name__)


def _login_attempts() -> dict[str, list[datetime]]:
    # Per-app so each app instance (and each test) starts clean.
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = utcnow() - timedelta(seconds=current_app.config["LOGIN_RATE_WINDOW"])
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= current_app.config["LOGIN_RATE_LIMIT"]


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(utcnow())


def _session_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role_key,
        "address": user.address,
    }


def _start_session(user: User) -> None:
    session.clear()
    session["user_id"] = user.id
    ensure_csrf_token()


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


@bp.get("/csrf")
def csrf():
    return {"csrf_token": ensure_csrf_token()}


@bp.post("/register")
def register_post():
    s = db_session()
    payload = request_payload()
    payload.pop("role", None)  # self-registration always yields a normal user

    errors = validate_user_payload(payload)
    if errors:
        return error_response(errors)
    if email_taken(s, clean_str(payload.get("email"))):
        return error_response("An account with this email already exists.", 409)

    user = create_user(s, payload, ROLE_NORMAL_USER, actor=None)
    s.commit()
    _start_session(user)
    current_app.logger.info("Registered user id=%s request_id=%s", user.id, g.request_id)
    return jsonify({"user": _session_user(user), "csrf_token": session["csrf_token"]}), 201


@bp.post("/login")
def login_post():
    payload = request_payload()
    email = clean_str(payload.get("email")).lower()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s)", ip)
        return error_response("Too many login attempts. Please wait and try again.", 429)

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, str(password)):
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
        current_app.logger.info("Login failed (email=%s request_id=%s)", email, g.request_id)
        return error_response("Invalid credentials.", 401)

    _start_session(user)
    _login_attempts()[ip].clear()
    record_event(s, actor=user, action="auth.login", entity=user)
    s.commit()
    return {"user": _session_user(user), "csrf_token": session["csrf_token"]}


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity=user)
        s.commit()
    session.clear()
    return {"ok": True}


@bp.get("/me")
@login_required
def me():
    return {"user": _session_user(g.current_user)}


@bp.post("/change-password")
@login_required
def change_password_post():
    s = db_session()
    payload = request_payload()
    errors = change_password(
        s,
        g.current_user,
        payload.get("current_password") or "",
        payload.get("new_password") or "",
    )
    if errors:
        return error_response(errors)
    s.commit()
    return {"message": "Password updated successfully"}
