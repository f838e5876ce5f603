from __future__ import annotations

from typing import TYPE_CHECKING, Any

from werkzeug.security import check_password_hash, generate_password_hash

from app.storerate.audit import record_event
from app.storerate.constants import ADDRESS_MAX_LENGTH, NAME_MAX_LENGTH, PASSWORD_MIN_LENGTH, ROLE_NAMES
from app.storerate.models import User
from app.storerate.rbac import get_role
from app.storerate.utils import clean_str, is_valid_email

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def validate_password(password: Any) -> list[str]:
    if not isinstance(password, str) or not password:
        return ["Password is required."]
    if len(password) < PASSWORD_MIN_LENGTH:
        return [f"Password must be at least {PASSWORD_MIN_LENGTH} characters."]
    return []


def validate_user_payload(payload: dict) -> list[str]:
    """Validate account creation payload. Returns list of errors."""
    errors: list[str] = []

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
    if len(address) > ADDRESS_MAX_LENGTH:
        errors.append(f"Address must be at most {ADDRESS_MAX_LENGTH} characters.")

    errors.extend(validate_password(payload.get("password") or ""))

    role_key = clean_str(payload.get("role"))
    if role_key and role_key not in ROLE_NAMES:
        errors.append(f"Invalid role. Must be one of: {', '.join(ROLE_NAMES)}")
    return errors


def email_taken(s: "Session", email: str) -> bool:
    return s.query(User.id).filter(User.email == email.strip().lower()).first() is not None


def create_user(s: "Session", payload: dict, role_key: str, actor: User | None) -> User:
    """
    Create an account with exactly one role. Payload must already be validated.
    `actor` is None for self-registration.
    """
    role = get_role(s, role_key)
    if role is None:
        raise RuntimeError(f"Role {role_key!r} is not seeded. Run scripts/init_db.py.")

    user = User(
        name=clean_str(payload.get("name")),
        email=clean_str(payload.get("email")).lower(),
        password_hash=generate_password_hash(payload.get("password") or ""),
        address=clean_str(payload.get("address")) or None,
        is_active=True,
    )
    user.roles.append(role)
    s.add(user)
    s.flush()

    record_event(
        s,
        actor=actor or user,
        action="user.create" if actor else "auth.register",
        entity=user,
        metadata={"email": user.email, "role": role_key},
    )
    return user


def set_user_role(s: "Session", user: User, role_key: str) -> None:
    role = get_role(s, role_key)
    if role is None:
        raise RuntimeError(f"Role {role_key!r} is not seeded. Run scripts/init_db.py.")
    user.roles.clear()
    user.roles.append(role)


def change_password(s: "Session", user: User, current_password: Any, new_password: Any) -> list[str]:
    """Verify the current password and store a new hash. Returns list of errors."""
    if not isinstance(current_password, str) or not isinstance(new_password, str):
        return ["Current password and new password are required."]
    if not current_password or not new_password:
        return ["Current password and new password are required."]
    if not check_password_hash(user.password_hash, current_password):
        return ["Current password is incorrect."]
    errors = validate_password(new_password)
    if errors:
        return errors

    user.password_hash = generate_password_hash(new_password)
    record_event(s, actor=user, action="user.password_change", entity=user)
    return []
