from flask import Blueprint, g, url_for

from app.storerate.rbac import user_has_permission

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    """Where the caller's dashboard lives, by role."""
    user = getattr(g, "current_user", None)
    if user is None:
        return {
            "name": "Store Rating System",
            "login": url_for("auth.login_post"),
            "register": url_for("auth.register_post"),
        }
    if user_has_permission(user, "admin.view"):
        home = url_for("admin.index")
    elif user_has_permission(user, "owner.dashboard"):
        home = url_for("ratings.owner_store")
    else:
        home = url_for("stores.stores_list")
    return {"role": user.role_key, "home": home}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200
