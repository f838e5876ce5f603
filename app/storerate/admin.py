from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, current_app, g, jsonify, request
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from app.storerate.accounts import create_user, email_taken, set_user_role, validate_user_payload
from app.storerate.audit import record_event
from app.storerate.constants import ROLE_NAMES, ROLE_STORE_OWNER
from app.storerate.db import db_session
from app.storerate.models import AuditEvent, Role, User
from app.storerate.modules.ratings.models import Rating
from app.storerate.modules.stores.models import Store
from app.storerate.modules.stores.service import store_stats
from app.storerate.rbac import require_permission
from app.storerate.utils import clean_str, error_response, parse_sort, request_payload

bp = Blueprint("admin", __name__)

USER_SORTABLE_COLUMNS = ("name", "email", "address", "role", "created_at")


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


@bp.get("/")
@require_permission("admin.view")
def index():
    """Dashboard totals plus a lightweight DB probe."""
    s = db_session()
    status = {"db_connected": False, "db_error": None}
    try:
        s.execute(text("SELECT 1"))
        status["db_connected"] = True
    except SQLAlchemyError as e:
        current_app.logger.exception("Admin dashboard DB probe failed")
        status["db_error"] = str(e)

    return {
        "total_users": s.query(func.count(User.id)).scalar() or 0,
        "total_stores": s.query(func.count(Store.id)).scalar() or 0,
        "total_ratings": s.query(func.count(Rating.id)).scalar() or 0,
        "system_status": status,
    }


# ============================================================================
# ACCOUNT MANAGEMENT
# ============================================================================

@bp.get("/users")
@require_permission("admin.view")
def users_list():
    s = db_session()
    name = (request.args.get("name") or "").strip()
    email = (request.args.get("email") or "").strip()
    address = (request.args.get("address") or "").strip()
    role = (request.args.get("role") or "").strip()
    sort, descending = parse_sort(USER_SORTABLE_COLUMNS, "name")

    q = s.query(User)
    if name:
        q = q.filter(func.lower(User.name).like(f"%{name.lower()}%"))
    if email:
        q = q.filter(func.lower(User.email).like(f"%{email.lower()}%"))
    if address:
        q = q.filter(func.lower(User.address).like(f"%{address.lower()}%"))
    if role or sort == "role":
        q = q.outerjoin(User.roles)
    if role:
        q = q.filter(Role.key == role)

    col = Role.key if sort == "role" else getattr(User, sort)
    q = q.order_by(col.desc() if descending else col.asc(), User.id.asc())
    return jsonify([u.to_dict() for u in q.all()])


@bp.post("/users")
@require_permission("admin.edit")
def users_new_post():
    s = db_session()
    payload = request_payload()

    errors = validate_user_payload(payload)
    if not clean_str(payload.get("role")):
        errors.append("Role is required.")
    if errors:
        return error_response(errors)
    if email_taken(s, clean_str(payload.get("email"))):
        return error_response("An account with this email already exists.", 409)

    user = create_user(s, payload, clean_str(payload.get("role")), actor=g.current_user)
    s.commit()
    return jsonify(user.to_dict()), 201


@bp.get("/users/<int:user_id>")
@require_permission("admin.view")
def users_detail(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    data = user.to_dict()
    if user.role_key == ROLE_STORE_OWNER:
        store = s.query(Store).filter(Store.owner_user_id == user.id).one_or_none()
        if store:
            average, total = store_stats(s, store)
            data["store"] = {"id": store.id, "name": store.name, "average_rating": average, "total_ratings": total}
        else:
            data["store"] = None
    return data


@bp.post("/users/<int:user_id>/update")
@require_permission("admin.edit")
def users_update(user_id: int):
    s = db_session()
    u = g.current_user
    user = s.get(User, user_id)
    if not user:
        abort(404)

    if user.id == u.id:
        return error_response("You cannot modify your own account from this endpoint.", 400)

    payload = request_payload()
    role_key = clean_str(payload.get("role"))
    if role_key and role_key not in ROLE_NAMES:
        return error_response(f"Invalid role. Must be one of: {', '.join(ROLE_NAMES)}")

    # A store's owner must keep the store_owner role while the store points at them.
    if role_key and role_key != ROLE_STORE_OWNER:
        owned = s.query(Store.id).filter(Store.owner_user_id == user.id).first()
        if owned is not None:
            return error_response("User owns a store; reassign it before changing their role.", 409)

    before = {"is_active": user.is_active, "role": user.role_key}

    if "is_active" in payload:
        user.is_active = str(payload.get("is_active")).strip().lower() in ("1", "true", "yes", "on")
    if role_key:
        set_user_role(s, user, role_key)

    after = {"is_active": user.is_active, "role": user.role_key}

    record_event(
        s,
        actor=u,
        action="user.update",
        entity=user,
        metadata={"before": before, "after": after},
    )
    s.commit()
    return user.to_dict()


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Last 200 audit events with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        return error_response("date_from must be YYYY-MM-DD")
    if (request.args.get("date_to") or "").strip() and not date_to:
        return error_response("date_to must be YYYY-MM-DD")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return jsonify([ev.to_dict() for ev in events])
