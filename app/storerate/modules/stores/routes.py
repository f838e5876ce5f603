from flask import Blueprint, g, jsonify, request

from app.storerate.db import db_session
from app.storerate.modules.stores.service import list_stores_for_user
from app.storerate.rbac import require_permission

bp = Blueprint("stores", __name__)


@bp.get("/stores")
@require_permission("stores.browse")
def stores_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    return jsonify(list_stores_for_user(s, g.current_user, search))
