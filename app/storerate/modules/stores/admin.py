from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, request

from app.storerate.db import db_session
from app.storerate.modules.stores.models import Store
from app.storerate.modules.stores.service import (
    SORTABLE_COLUMNS,
    admin_list_stores,
    create_store,
    store_conflicts,
    store_stats,
    store_to_dict,
    validate_store_payload,
)
from app.storerate.rbac import require_permission
from app.storerate.utils import error_response, parse_sort, request_payload

bp = Blueprint("stores_admin", __name__)


# ---------- List ----------
@bp.get("/stores")
@require_permission("admin.view")
def stores_list():
    s = db_session()
    sort, descending = parse_sort(SORTABLE_COLUMNS, "name")
    stores = admin_list_stores(
        s,
        name=(request.args.get("name") or "").strip(),
        email=(request.args.get("email") or "").strip(),
        address=(request.args.get("address") or "").strip(),
        sort=sort,
        descending=descending,
    )
    return jsonify(stores)


# ---------- New ----------
@bp.post("/stores")
@require_permission("admin.edit")
def stores_new_post():
    s = db_session()
    payload = request_payload()

    errors = validate_store_payload(s, payload)
    if errors:
        return error_response(errors)
    conflicts = store_conflicts(s, payload)
    if conflicts:
        return error_response(conflicts, 409)

    store = create_store(s, payload, g.current_user)
    s.commit()
    return jsonify(store_to_dict(store, None, 0)), 201


# ---------- Detail ----------
@bp.get("/stores/<int:store_id>")
@require_permission("admin.view")
def store_detail(store_id: int):
    s = db_session()
    store = s.get(Store, store_id)
    if not store:
        abort(404)
    average, total = store_stats(s, store)
    data = store_to_dict(store, average, total)
    data["owner"] = (
        {"id": store.owner.id, "name": store.owner.name, "email": store.owner.email} if store.owner else None
    )
    return data
