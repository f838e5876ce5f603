from flask import Blueprint, current_app, g, jsonify

from app.storerate.db import db_session
from app.storerate.modules.ratings.service import (
    get_owned_store,
    list_store_ratings,
    owner_store_summary,
    submit_rating,
    validate_rating_payload,
)
from app.storerate.modules.stores.models import Store
from app.storerate.rbac import require_permission
from app.storerate.utils import error_response, request_payload

bp = Blueprint("ratings", __name__)


@bp.post("/user/stores/<int:store_id>/rating")
@require_permission("ratings.submit")
def rating_submit(store_id: int):
    s = db_session()
    payload = request_payload()

    errors = validate_rating_payload(payload)
    if errors:
        return error_response(errors)

    store = s.get(Store, store_id)
    if not store:
        return error_response("Store not found", 404)

    rating, created = submit_rating(s, g.current_user, store, payload)
    s.commit()
    current_app.logger.info(
        "Rating %s store_id=%s user_id=%s value=%s",
        "created" if created else "updated",
        store_id,
        rating.user_id,
        rating.rating,
    )
    return jsonify(rating.to_dict()), 201 if created else 200


@bp.get("/store-owner/store")
@require_permission("owner.dashboard")
def owner_store():
    s = db_session()
    store = get_owned_store(s, g.current_user)
    if not store:
        return jsonify(None)
    return jsonify(owner_store_summary(s, store))


@bp.get("/store-owner/ratings")
@require_permission("owner.dashboard")
def owner_ratings():
    s = db_session()
    store = get_owned_store(s, g.current_user)
    if not store:
        return jsonify([])
    return jsonify(list_store_ratings(s, store))
