from __future__ import annotations

import pytest
from werkzeug.security import generate_password_hash

from app.promptdesk import auth, create_app
from app.promptdesk.db import session_scope
from app.promptdesk.models import Base, User
from scripts.init_db import seed_roles

PASSWORD = "pw"

# email -> role key
SEED_USERS = {
    "owner@example.com": "member",
    "other@example.com": "member",
    "viewer@example.com": "viewer",
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in (
        "LOG_LEVEL",
        "PRIMARY_LOCK_TIMEOUT_MS",
        "SQLITE_BUSY_TIMEOUT",
        "PROMPTS_PAGE_SIZE",
        "LOGIN_RATE_LIMIT",
        "LOGIN_RATE_WINDOW_SECONDS",
    ):
        monkeypatch.delenv(k, raising=False)

    auth._login_attempts.clear()
    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = seed_roles(s)
        for email, role_key in SEED_USERS.items():
            u = User(email=email, password_hash=generate_password_hash(PASSWORD), is_active=True)
            u.roles.append(roles[role_key])
            s.add(u)
    return app


@pytest.fixture()
def user_ids(app) -> dict[str, int]:
    with session_scope(app) as s:
        return {u.email.split("@")[0]: u.id for u in s.query(User).all()}


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, email: str = "owner@example.com") -> dict[str, str]:
    """Log in and return headers carrying the session's CSRF token."""
    r = client.post("/auth/login", data={"email": email, "password": PASSWORD}, follow_redirects=False)
    assert r.status_code == 302
    token = client.get("/api/session").json["csrf_token"]
    return {"X-CSRF-Token": token}


@pytest.fixture()
def owner_headers(client):
    return login(client, "owner@example.com")


@pytest.fixture()
def login_as():
    return login
