"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against TEST_DATABASE_URL (in-memory SQLite by default,
    PostgreSQL when the variable points at one).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - signup(client, ...)     → HTTP response
  - login(client, ...)      → dict with user + tokens
  - auth_headers(token)     → {"Authorization": "Bearer <token>"}

These are plain functions so they can be called with arbitrary arguments in
any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from neighborhub.app import create_app
from neighborhub.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire
    test session, with all tables created. Drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test.

    access_tokens reference refresh_tokens and users, so they go first.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM access_tokens"))
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

_phone_counter = iter(range(5550000, 5559999))


def signup(
    client,
    username: str = "alice",
    email: str | None = None,
    phone: str | None = None,
    secret: str = "correct1",
):
    """Signs up a new user and returns the HTTP response."""
    if email is None:
        email = f"{username}@test.com"
    if phone is None:
        phone = f"+1{next(_phone_counter)}"
    return client.post(
        "/api/v1/auth/signup",
        json={"username": username, "email": email, "phone": phone, "secret": secret},
    )


def login(client, identifier: str, secret: str = "correct1") -> dict:
    """
    Logs in a user and returns the response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    resp = client.post(
        "/api/v1/auth/login",
        json={"identifier": identifier, "secret": secret},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def signup_and_login(client, username: str = "alice", secret: str = "correct1") -> dict:
    resp = signup(client, username=username, secret=secret)
    assert resp.status_code == 200, f"signup failed: {resp.get_json()}"
    return login(client, username, secret)


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def count_rows(app, table: str, where: str = "") -> int:
    """Counts rows in `table`, optionally filtered by a raw SQL condition."""
    sql = f"SELECT COUNT(*) FROM {table}"
    if where:
        sql += f" WHERE {where}"
    with app.app_context():
        return _db.session.execute(text(sql)).scalar_one()
