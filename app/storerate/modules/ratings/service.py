from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError

from app.storerate.audit import record_event
from app.storerate.constants import MAX_RATING, MIN_RATING
from app.storerate.models import User
from app.storerate.modules.ratings.models import Rating
from app.storerate.modules.stores.models import Store
from app.storerate.modules.stores.service import store_stats
from app.storerate.utils import clean_str, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def average_rating(values: Iterable[int]) -> float | None:
    """Arithmetic mean of rating values, or None when there are none."""
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def parse_rating(raw: Any) -> int | None:
    """
    Accepts an int or a string of digits (form posts). Floats and booleans are
    rejected so 3.5 never rounds into a valid score.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        # isdigit() admits "²" and unbounded strings; int() would raise on both.
        if not (text.isascii() and text.isdecimal()) or len(text) > 2:
            return None
        value = int(text)
    else:
        return None
    if value < MIN_RATING or value > MAX_RATING:
        return None
    return value


def validate_rating_payload(payload: dict) -> list[str]:
    """Validate rating submission payload. Returns list of errors."""
    errors = []
    if parse_rating(payload.get("rating")) is None:
        errors.append(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    comment = payload.get("comment")
    if comment is not None and not isinstance(comment, str):
        errors.append("Comment must be text.")
    return errors


def _find_rating(s: "Session", user_id: int, store_id: int) -> Rating | None:
    return (
        s.query(Rating)
        .filter(Rating.user_id == user_id, Rating.store_id == store_id)
        .one_or_none()
    )


def submit_rating(s: "Session", user: User, store: Store, payload: dict) -> tuple[Rating, bool]:
    """
    Upsert the caller's rating for a store on (user, store).
    Returns (rating, created). Payload must already be validated.
    """
    value = parse_rating(payload.get("rating"))
    if value is None:
        raise ValueError("rating out of range")
    comment = clean_str(payload.get("comment")) or None
    user_id, store_id = user.id, store.id

    existing = _find_rating(s, user_id, store_id)
    if existing is None:
        now = utcnow()
        rating = Rating(
            user_id=user_id,
            store_id=store_id,
            rating=value,
            comment=comment,
            created_at=now,
            updated_at=now,
        )
        s.add(rating)
        try:
            s.flush()
        except IntegrityError:
            # Lost a race against a concurrent insert of the same pair; update theirs.
            s.rollback()
            existing = _find_rating(s, user_id, store_id)
            if existing is None:
                raise
        else:
            record_event(
                s,
                actor=user,
                action="rating.create",
                entity=rating,
                metadata={"store_id": store_id, "rating": value},
            )
            return rating, True

    old_value = existing.rating
    existing.rating = value
    existing.comment = comment
    existing.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="rating.update",
        entity=existing,
        metadata={"store_id": store_id, "changes": {"rating": {"old": old_value, "new": value}}},
    )
    return existing, False


def get_owned_store(s: "Session", user: User) -> Store | None:
    return s.query(Store).filter(Store.owner_user_id == user.id).order_by(Store.id.asc()).first()


def owner_store_summary(s: "Session", store: Store) -> dict:
    average, total = store_stats(s, store)
    return {
        "id": store.id,
        "name": store.name,
        "email": store.email,
        "address": store.address,
        # Owners see 0 rather than null for an unrated store.
        "average_rating": average if average is not None else 0,
        "total_ratings": total,
    }


def list_store_ratings(s: "Session", store: Store) -> list[dict]:
    ratings = (
        s.query(Rating)
        .filter(Rating.store_id == store.id)
        .order_by(Rating.created_at.desc(), Rating.id.desc())
        .all()
    )
    result = []
    for r in ratings:
        item = r.to_dict()
        item["user"] = {"name": r.user.name, "email": r.user.email}
        result.append(item)
    return result
