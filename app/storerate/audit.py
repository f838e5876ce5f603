import json
import logging
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.storerate.models import AuditEvent, User

logger = logging.getLogger(__name__)


def _entity_ref(entity: Any) -> tuple[str, str | None]:
    entity_id = getattr(entity, "id", None)
    return type(entity).__name__, (str(entity_id) if entity_id is not None else None)


def _request_context() -> tuple[str | None, str | None]:
    if not has_request_context():
        return None, None
    return getattr(g, "request_id", None), request.remote_addr


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity: Any = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Stage an AuditEvent on the session; the caller commits it with the write.

    Pass a mapped object as `entity` to fill in its class name and primary key,
    or give `entity_type`/`entity_id` directly for things that are not rows
    (a rejected login email, for instance). Explicit values win.
    """
    if entity is not None:
        derived_type, derived_id = _entity_ref(entity)
        entity_type = entity_type or derived_type
        entity_id = entity_id or derived_id

    ctx_request_id, client_ip = _request_context()
    event = AuditEvent(
        request_id=request_id or ctx_request_id,
        actor_user_id=actor.id if actor is not None else None,
        actor_user_email=actor.email if actor is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        client_ip=client_ip,
    )
    s.add(event)
    logger.debug(
        "audit %s %s:%s actor=%s",
        action,
        entity_type or "-",
        entity_id or "-",
        actor.email if actor is not None else "anonymous",
    )
    return event
