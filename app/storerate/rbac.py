from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g
from sqlalchemy.orm import Session

from app.storerate.constants import PERMISSION_NAMES, ROLE_NAMES, ROLE_PERMISSIONS
from app.storerate.models import Permission, Role, User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            abort(401)
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated -> 401
            if not user or not user.is_active:
                abort(401)
            # Authenticated but unauthorized -> 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def ensure_roles(s: Session) -> dict[str, Role]:
    """
    Seed roles and permissions (idempotent). Returns roles keyed by role key.
    """
    perms: dict[str, Permission] = {
        p.key: p for p in s.query(Permission).filter(Permission.key.in_(list(PERMISSION_NAMES))).all()
    }
    for key, name in PERMISSION_NAMES.items():
        if key not in perms:
            perms[key] = Permission(key=key, name=name)
            s.add(perms[key])

    roles: dict[str, Role] = {r.key: r for r in s.query(Role).filter(Role.key.in_(list(ROLE_NAMES))).all()}
    for key, name in ROLE_NAMES.items():
        role = roles.get(key)
        if role is None:
            role = Role(key=key, name=name)
            s.add(role)
            roles[key] = role
        for perm_key in ROLE_PERMISSIONS[key]:
            if perms[perm_key] not in role.permissions:
                role.permissions.append(perms[perm_key])
    s.flush()
    return roles


def get_role(s: Session, role_key: str) -> Role | None:
    return s.query(Role).filter(Role.key == role_key).one_or_none()
