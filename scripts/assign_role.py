#!/usr/bin/env python3
"""Replace a user's role (idempotent).

Usage:
  python scripts/assign_role.py --email owner@example.com --role store_owner
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.storerate.constants import ROLE_NAMES  # noqa: E402
from app.storerate.models import Role, User  # noqa: E402
from scripts._db_utils import database_url_from_env, script_session  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--role", required=True, choices=sorted(ROLE_NAMES), help="Role key to assign")
    args = parser.parse_args()

    with script_session(database_url_from_env()) as s:
        user = s.query(User).filter(User.email == args.email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        role = s.query(Role).filter(Role.key == args.role).one_or_none()
        if not role:
            print(f"Role {args.role} not found. Run python scripts/init_db.py first.")
            return
        if [r.key for r in user.roles] == [role.key]:
            print(f"User already has role {args.role}: {args.email}")
            return
        user.roles.clear()
        user.roles.append(role)
        print(f"Role {args.role} assigned to {args.email}")


if __name__ == "__main__":
    main()
