import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.storerate.constants import ROLE_SYSTEM_ADMIN  # noqa: E402
from app.storerate.models import User  # noqa: E402
from app.storerate.rbac import ensure_roles  # noqa: E402
from scripts._db_utils import database_url_from_env, script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/system admin in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@storerate.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "System Administrator").strip()

    db_url = (database_url or database_url_from_env()).strip()

    with script_session(db_url) as s:
        roles = ensure_roles(s)
        role_admin = roles[ROLE_SYSTEM_ADMIN]

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                name=admin_name,
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if role_admin not in user.roles:
            user.roles.clear()
            user.roles.append(role_admin)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
