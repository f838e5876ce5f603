import os
import sys

import pytest
from sqlalchemy import create_engine, inspect
from werkzeug.security import check_password_hash, generate_password_hash

from app.storerate.constants import ROLE_NORMAL_USER, ROLE_STORE_OWNER, ROLE_SYSTEM_ADMIN
from app.storerate.models import Base, User
from app.storerate.rbac import ensure_roles
from scripts import assign_role, init_db, release, start
from scripts._db_utils import script_session


@pytest.fixture()
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path/'scripts.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    for k in ("ENV", "ADMIN_EMAIL", "ADMIN_PASSWORD", "ADMIN_NAME", "PORT", "WEB_CONCURRENCY"):
        monkeypatch.delenv(k, raising=False)
    return url


@pytest.fixture()
def schema(db_url):
    engine = create_engine(db_url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return db_url


def _admins(url):
    with script_session(url) as s:
        return [(u.email, u.role_key, u.password_hash) for u in s.query(User).all()]


def test_seed_only_is_idempotent(schema, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first-password")

    init_db.seed_only(database_url=schema)
    monkeypatch.setenv("ADMIN_PASSWORD", "second-password")
    init_db.seed_only(database_url=schema)

    admins = _admins(schema)
    assert len(admins) == 1
    email, role_key, password_hash = admins[0]
    assert email == "root@example.com"
    assert role_key == ROLE_SYSTEM_ADMIN
    # An existing admin keeps their password.
    assert check_password_hash(password_hash, "first-password")


def test_run_release_migrates_and_seeds(db_url, monkeypatch):
    monkeypatch.setenv("ADMIN_PASSWORD", "release-password")

    release.run_release()

    engine = create_engine(db_url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"users", "roles", "permissions", "stores", "ratings", "audit_events", "alembic_version"} <= tables

    admins = _admins(db_url)
    assert [(email, role) for email, role, _ in admins] == [("admin@storerate.local", ROLE_SYSTEM_ADMIN)]

    # A second release is a no-op on an up-to-date database.
    release.run_release()
    assert len(_admins(db_url)) == 1


def test_run_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release.run_release()


def test_run_release_refuses_sqlite_in_production(db_url, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="sqlite"):
        release.run_release()


@pytest.fixture()
def exec_calls(monkeypatch):
    calls = {"release": 0, "exec": []}

    def fake_release():
        calls["release"] += 1

    monkeypatch.setattr(release, "run_release", fake_release)
    monkeypatch.setattr(os, "execvp", lambda file, args: calls["exec"].append((file, args)))
    return calls


def test_start_runs_release_then_gunicorn(db_url, monkeypatch, exec_calls):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("WEB_CONCURRENCY", "3")

    start.main()

    assert exec_calls["release"] == 1
    [(file, args)] = exec_calls["exec"]
    assert file == "gunicorn"
    assert args[:2] == ["gunicorn", "app.wsgi:app"]
    assert args[args.index("--bind") + 1] == "0.0.0.0:9000"
    assert args[args.index("--workers") + 1] == "3"


def test_start_defaults_port(db_url, exec_calls):
    start.main()
    [(_file, args)] = exec_calls["exec"]
    assert args[args.index("--bind") + 1] == "0.0.0.0:8080"
    assert args[args.index("--workers") + 1] == "2"


@pytest.mark.parametrize("port", ["abc", "0", "70000"])
def test_start_rejects_invalid_port(db_url, monkeypatch, exec_calls, port):
    monkeypatch.setenv("PORT", port)
    with pytest.raises(SystemExit) as exc:
        start.main()
    assert exc.value.code == 1
    assert exec_calls["release"] == 0
    assert exec_calls["exec"] == []


def test_start_stops_when_release_fails(db_url, monkeypatch, exec_calls):
    def failing_release():
        raise RuntimeError("boom")

    monkeypatch.setattr(release, "run_release", failing_release)
    with pytest.raises(SystemExit) as exc:
        start.main()
    assert exc.value.code == 1
    assert exec_calls["exec"] == []


def test_assign_role_replaces_role(schema, monkeypatch, capsys):
    with script_session(schema) as s:
        roles = ensure_roles(s)
        user = User(
            name="Owner",
            email="owner@example.com",
            password_hash=generate_password_hash("password123"),
            is_active=True,
        )
        user.roles.append(roles[ROLE_NORMAL_USER])
        s.add(user)

    monkeypatch.setattr(sys, "argv", ["assign_role.py", "--email", "Owner@Example.com", "--role", ROLE_STORE_OWNER])
    assign_role.main()
    assert "Role store_owner assigned" in capsys.readouterr().out

    with script_session(schema) as s:
        user = s.query(User).filter(User.email == "owner@example.com").one()
        assert [r.key for r in user.roles] == [ROLE_STORE_OWNER]

    assign_role.main()
    assert "already has role" in capsys.readouterr().out


def test_assign_role_unknown_user(schema, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["assign_role.py", "--email", "ghost@example.com", "--role", ROLE_STORE_OWNER])
    assign_role.main()
    assert "User not found" in capsys.readouterr().out
