from app.storerate.constants import ROLE_NORMAL_USER, ROLE_STORE_OWNER
from app.storerate.db import session_scope
from app.storerate.models import AuditEvent, User


def test_register_creates_normal_user_and_logs_in(app, client):
    r = client.post(
        "/auth/register",
        json={"name": "Jane Doe", "email": "Jane@Example.com", "password": "longenough", "address": "5 Elm St"},
    )
    assert r.status_code == 201
    body = r.json
    assert body["user"]["email"] == "jane@example.com"
    assert body["user"]["role"] == ROLE_NORMAL_USER
    assert body["csrf_token"]

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json["user"]["name"] == "Jane Doe"
    assert me.json["user"]["address"] == "5 Elm St"


def test_register_ignores_requested_role(client):
    r = client.post(
        "/auth/register",
        json={"name": "Sneaky", "email": "sneaky@example.com", "password": "longenough", "role": "system_admin"},
    )
    assert r.status_code == 201
    assert r.json["user"]["role"] == ROLE_NORMAL_USER


def test_register_validation_errors(client):
    r = client.post("/auth/register", json={"name": "", "email": "not-an-email", "password": "short"})
    assert r.status_code == 400
    errors = r.json["errors"]
    assert "Name is required." in errors
    assert "Invalid email format." in errors
    assert any("at least 8" in e for e in errors)


def test_register_duplicate_email(client, make_user):
    make_user("taken@example.com", ROLE_NORMAL_USER)
    r = client.post(
        "/auth/register",
        json={"name": "Someone", "email": "taken@example.com", "password": "longenough"},
    )
    assert r.status_code == 409


def test_login_bad_credentials(app, client, make_user):
    make_user("user@example.com", ROLE_NORMAL_USER)
    r = client.post("/auth/login", json={"email": "user@example.com", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials."

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).all()]
    assert "auth.login_failed" in actions


def test_login_accepts_form_post(client, make_user):
    make_user("user@example.com", ROLE_NORMAL_USER)
    r = client.post("/auth/login", data={"email": "user@example.com", "password": "password123"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "user@example.com"


def test_login_rate_limited(app, client, make_user):
    app.config["LOGIN_RATE_LIMIT"] = 2
    make_user("user@example.com", ROLE_NORMAL_USER)
    for _ in range(2):
        assert client.post("/auth/login", json={"email": "user@example.com", "password": "nope"}).status_code == 401
    r = client.post("/auth/login", json={"email": "user@example.com", "password": "password123"})
    assert r.status_code == 429


def test_inactive_user_cannot_login(app, client, make_user):
    uid = make_user("user@example.com", ROLE_NORMAL_USER)
    with session_scope(app) as s:
        s.get(User, uid).is_active = False
    r = client.post("/auth/login", json={"email": "user@example.com", "password": "password123"})
    assert r.status_code == 401


def test_logout_requires_csrf_token(client, make_user, login):
    make_user("user@example.com", ROLE_NORMAL_USER)
    token = login("user@example.com")

    assert client.post("/auth/logout").status_code == 400

    r = client.post("/auth/logout", headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert client.get("/auth/me").status_code == 401


def test_csrf_endpoint_returns_session_token(client):
    token = client.get("/auth/csrf").json["csrf_token"]
    assert token
    assert client.get("/auth/csrf").json["csrf_token"] == token


def test_change_password(client, make_user, login):
    make_user("owner@example.com", ROLE_STORE_OWNER)
    token = login("owner@example.com")
    headers = {"X-CSRF-Token": token}

    r = client.post("/auth/change-password", json={"current_password": "wrong", "new_password": "newpassword1"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Current password is incorrect."

    r = client.post("/auth/change-password", json={"current_password": "password123"}, headers=headers)
    assert r.status_code == 400

    r = client.post(
        "/auth/change-password",
        json={"current_password": "password123", "new_password": "newpassword1"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json["message"] == "Password updated successfully"

    client.post("/auth/logout", headers=headers)
    assert client.post("/auth/login", json={"email": "owner@example.com", "password": "password123"}).status_code == 401
    login("owner@example.com", "newpassword1")


def test_change_password_requires_login(client):
    token = client.get("/auth/csrf").json["csrf_token"]
    r = client.post(
        "/auth/change-password",
        json={"current_password": "a", "new_password": "b"},
        headers={"X-CSRF-Token": token},
    )
    assert r.status_code == 401
