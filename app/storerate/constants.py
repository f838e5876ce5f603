"""
Central constants for the store rating application.
"""
from __future__ import annotations

ROLE_SYSTEM_ADMIN = "system_admin"
ROLE_STORE_OWNER = "store_owner"
ROLE_NORMAL_USER = "normal_user"

ROLE_NAMES = {
    ROLE_SYSTEM_ADMIN: "System Administrator",
    ROLE_STORE_OWNER: "Store Owner",
    ROLE_NORMAL_USER: "Normal User",
}

PERMISSION_NAMES = {
    "admin.view": "Admin: view users, stores and audit",
    "admin.edit": "Admin: create and update users and stores",
    "owner.dashboard": "Store owner: view own store ratings",
    "stores.browse": "Stores: browse with ratings",
    "ratings.submit": "Ratings: submit or update",
}

ROLE_PERMISSIONS = {
    ROLE_SYSTEM_ADMIN: ("admin.view", "admin.edit"),
    ROLE_STORE_OWNER: ("owner.dashboard",),
    ROLE_NORMAL_USER: ("stores.browse", "ratings.submit"),
}

MIN_RATING = 1
MAX_RATING = 5

NAME_MAX_LENGTH = 60
ADDRESS_MAX_LENGTH = 400
PASSWORD_MIN_LENGTH = 8
