from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.storerate.audit import record_event
from app.storerate.constants import ADDRESS_MAX_LENGTH, NAME_MAX_LENGTH, ROLE_STORE_OWNER
from app.storerate.models import User
from app.storerate.modules.ratings.models import Rating
from app.storerate.modules.stores.models import Store
from app.storerate.utils import clean_str, is_valid_email, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session


SORTABLE_COLUMNS = ("name", "email", "address", "average_rating", "created_at")


def _rating_stats_subquery(s: "Session"):
    return (
        s.query(
            Rating.store_id.label("store_id"),
            func.avg(Rating.rating).label("average_rating"),
            func.count(Rating.id).label("total_ratings"),
        )
        .group_by(Rating.store_id)
        .subquery()
    )


def stores_with_stats(s: "Session") -> tuple["Query", Any]:
    """
    Query yielding (Store, average_rating | None, total_ratings | None) rows.
    Returns the query and the stats subquery so callers can filter/sort on it.
    """
    stats = _rating_stats_subquery(s)
    q = s.query(Store, stats.c.average_rating, stats.c.total_ratings).outerjoin(
        stats, stats.c.store_id == Store.id
    )
    return q, stats


def store_to_dict(store: Store, average: Any, total: Any) -> dict:
    return {
        "id": store.id,
        "name": store.name,
        "email": store.email,
        "address": store.address,
        "owner_user_id": store.owner_user_id,
        "average_rating": float(average) if average is not None else None,
        "total_ratings": int(total or 0),
        "created_at": store.created_at.isoformat() if store.created_at else None,
    }


def list_stores_for_user(s: "Session", user: User, search: str = "") -> list[dict]:
    """
    Every store newest first, with its average rating (None when unrated) and the
    caller's own rating value (None when the caller has not rated it).
    """
    q, _stats = stores_with_stats(s)
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(or_(func.lower(Store.name).like(like), func.lower(Store.address).like(like)))
    rows = q.order_by(Store.created_at.desc(), Store.id.desc()).all()

    own = dict(s.query(Rating.store_id, Rating.rating).filter(Rating.user_id == user.id).all())

    result = []
    for store, average, total in rows:
        item = store_to_dict(store, average, total)
        item["user_rating"] = own.get(store.id)
        result.append(item)
    return result


def admin_list_stores(
    s: "Session",
    *,
    name: str = "",
    email: str = "",
    address: str = "",
    sort: str = "name",
    descending: bool = False,
) -> list[dict]:
    q, stats = stores_with_stats(s)
    if name:
        q = q.filter(func.lower(Store.name).like(f"%{name.lower()}%"))
    if email:
        q = q.filter(func.lower(Store.email).like(f"%{email.lower()}%"))
    if address:
        q = q.filter(func.lower(Store.address).like(f"%{address.lower()}%"))

    if sort == "average_rating":
        col = func.coalesce(stats.c.average_rating, 0)
    else:
        col = getattr(Store, sort if sort in SORTABLE_COLUMNS else "name")
    q = q.order_by(col.desc() if descending else col.asc(), Store.id.asc())
    return [store_to_dict(store, average, total) for store, average, total in q.all()]


def store_stats(s: "Session", store: Store) -> tuple[float | None, int]:
    average, total = (
        s.query(func.avg(Rating.rating), func.count(Rating.id)).filter(Rating.store_id == store.id).one()
    )
    return (float(average) if average is not None else None, int(total or 0))


def parse_owner_id(raw: Any) -> tuple[int | None, str | None]:
    if raw is None or clean_str(raw) == "":
        return None, None
    try:
        return int(clean_str(raw)), None
    except ValueError:
        return None, "Owner id must be an integer."


def validate_store_payload(s: "Session", payload: dict) -> list[str]:
    """Validate store creation payload. Returns list of errors."""
    errors = []
    name = clean_str(payload.get("name"))
    if not name:
        errors.append("Name is required.")
    elif len(name) > NAME_MAX_LENGTH:
        errors.append(f"Name must be at most {NAME_MAX_LENGTH} characters.")

    email = clean_str(payload.get("email")).lower()
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")

    address = clean_str(payload.get("address"))
    if not address:
        errors.append("Address is required.")
    elif len(address) > ADDRESS_MAX_LENGTH:
        errors.append(f"Address must be at most {ADDRESS_MAX_LENGTH} characters.")

    owner_id, owner_error = parse_owner_id(payload.get("owner_user_id"))
    if owner_error:
        errors.append(owner_error)
    elif owner_id is not None:
        owner = s.get(User, owner_id)
        if owner is None:
            errors.append("Owner not found.")
        elif owner.role_key != ROLE_STORE_OWNER:
            errors.append("Owner must have the store owner role.")
    return errors


def store_conflicts(s: "Session", payload: dict) -> list[str]:
    """Uniqueness checks (email, one store per owner). Returns list of conflicts."""
    conflicts = []
    email = clean_str(payload.get("email")).lower()
    if s.query(Store.id).filter(Store.email == email).first() is not None:
        conflicts.append("A store with this email already exists.")
    owner_id, _ = parse_owner_id(payload.get("owner_user_id"))
    if owner_id is not None and s.query(Store.id).filter(Store.owner_user_id == owner_id).first() is not None:
        conflicts.append("This owner already has a store.")
    return conflicts


def create_store(s: "Session", payload: dict, user: User) -> Store:
    """Create a new store. Payload must already be validated."""
    now = utcnow()
    owner_id, _ = parse_owner_id(payload.get("owner_user_id"))
    store = Store(
        name=clean_str(payload.get("name")),
        email=clean_str(payload.get("email")).lower(),
        address=clean_str(payload.get("address")),
        owner_user_id=owner_id,
        created_at=now,
        updated_at=now,
    )
    s.add(store)
    s.flush()

    record_event(
        s,
        actor=user,
        action="store.create",
        entity=store,
        metadata={"name": store.name, "owner_user_id": owner_id},
    )
    return store
