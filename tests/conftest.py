import pytest
from werkzeug.security import generate_password_hash

from app.storerate import create_app
from app.storerate.db import session_scope
from app.storerate.models import Base, Role, User
from app.storerate.modules.ratings.models import Rating
from app.storerate.modules.stores.models import Store
from app.storerate.rbac import ensure_roles

PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("LOG_LEVEL", "SESSION_HOURS", "LOGIN_RATE_LIMIT", "LOGIN_RATE_WINDOW"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        ensure_roles(s)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(email, role, *, name=None, password=PASSWORD, address="1 Main St"):
        with session_scope(app) as s:
            r = s.query(Role).filter(Role.key == role).one()
            u = User(
                name=name or email.split("@")[0].title(),
                email=email,
                password_hash=generate_password_hash(password),
                address=address,
                is_active=True,
            )
            u.roles.append(r)
            s.add(u)
            s.flush()
            return u.id

    return _make


@pytest.fixture()
def make_store(app):
    def _make(name, email, *, address="10 Market St", owner_id=None):
        with session_scope(app) as s:
            store = Store(name=name, email=email, address=address, owner_user_id=owner_id)
            s.add(store)
            s.flush()
            return store.id

    return _make


@pytest.fixture()
def add_rating(app):
    def _add(user_id, store_id, value, comment=None):
        with session_scope(app) as s:
            s.add(Rating(user_id=user_id, store_id=store_id, rating=value, comment=comment))

    return _add


@pytest.fixture()
def login(client):
    """Log in and return the CSRF token for the new session."""

    def _login(email, password=PASSWORD):
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.get_json()
        return r.get_json()["csrf_token"]

    return _login
