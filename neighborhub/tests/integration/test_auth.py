"""
tests/integration/test_auth.py — Integration tests for authentication endpoints.

Endpoints covered:
  POST /auth/signup         → 200
  POST /auth/login          → 200
  POST /auth/refresh-token  → 200
  POST /auth/logout         → 200
  GET  /auth/me             → 200

Token bookkeeping is checked directly against the access_tokens and
refresh_tokens tables after each flow.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import text

from neighborhub.app.extensions import db
from neighborhub.app.repositories import token_store
from neighborhub.app.security.token_codec import ACCESS, REFRESH, TokenCodec

from .conftest import auth_headers, count_rows, login, signup, signup_and_login

VALID = "NOT revoked AND NOT expired"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/signup
# ═══════════════════════════════════════════════════════════════════════════

class TestSignup:

    def test_signup_success_returns_200_with_message(self, client, app):
        resp = signup(client, "alice")
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"message": "User registered successfully!"}
        assert count_rows(app, "users") == 1

    def test_signup_stores_hashed_secret_and_user_role(self, client, app):
        signup(client, "alice", secret="correct1")
        with app.app_context():
            row = db.session.execute(
                text("SELECT password_hash, role FROM users WHERE username = 'alice'")
            ).one()
        assert row.password_hash != "correct1"
        assert row.password_hash.startswith("$2")
        assert row.role == "user"

    def test_duplicate_username_returns_400_and_creates_no_row(self, client, app):
        signup(client, "alice", email="a1@test.com", phone="+15550001")
        resp = signup(client, "alice", email="a2@test.com", phone="+15550002")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "USERNAME_TAKEN"
        assert count_rows(app, "users") == 1

    def test_duplicate_phone_returns_400_and_creates_no_row(self, client, app):
        signup(client, "alice", phone="+15550001")
        resp = signup(client, "bob", phone="+15550001")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "PHONE_TAKEN"
        assert count_rows(app, "users") == 1

    def test_duplicate_email_returns_400(self, client):
        signup(client, "alice", email="shared@test.com")
        resp = signup(client, "bob", email="shared@test.com")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "EMAIL_TAKEN"

    def test_weak_secret_returns_400(self, client):
        resp = signup(client, "alice", secret="password")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "secret"

    def test_secret_longer_than_bcrypt_limit_returns_400(self, client, app):
        resp = signup(client, "alice", secret="a1" * 40)
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_FIELD"
        assert error["field"] == "secret"
        assert count_rows(app, "users") == 0

    def test_missing_fields_return_400(self, client):
        resp = client.post("/api/v1/auth/signup", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success_returns_two_non_empty_tokens(self, client):
        signup(client, "alice", secret="correct1")
        resp = client.post("/api/v1/auth/login", json={
            "identifier": "alice", "secret": "correct1",
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert set(data) == {"user", "access_token", "refresh_token"}
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["access_token"] != data["refresh_token"]
        assert data["user"]["username"] == "alice"
        assert "password_hash" not in data["user"]

    def test_login_by_email(self, client):
        signup(client, "alice", email="alice@mail.com")
        data = login(client, "alice@mail.com")
        assert data["user"]["email"] == "alice@mail.com"

    def test_wrong_secret_returns_400_invalid_credentials(self, client):
        signup(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "identifier": "alice", "secret": "wrong1234",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_identifier_returns_same_error_as_wrong_secret(self, client):
        resp = client.post("/api/v1/auth/login", json={
            "identifier": "ghost", "secret": "correct1",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_overlong_secret_at_login_returns_400_invalid_field(self, client):
        signup(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "identifier": "alice", "secret": "a1" * 40,
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"
        assert resp.get_json()["error"]["field"] == "secret"

    def test_failed_login_persists_no_tokens(self, client, app):
        signup(client, "alice")
        client.post("/api/v1/auth/login", json={"identifier": "alice", "secret": "nope12345"})
        assert count_rows(app, "access_tokens") == 0
        assert count_rows(app, "refresh_tokens") == 0

    def test_login_leaves_exactly_one_valid_token_pair(self, client, app):
        signup(client, "alice")
        login(client, "alice")
        login(client, "alice")
        second = login(client, "alice")

        assert count_rows(app, "access_tokens") == 3
        assert count_rows(app, "access_tokens", VALID) == 1
        assert count_rows(app, "refresh_tokens", VALID) == 1

        with app.app_context():
            access = token_store.find_access_token(second["access_token"], db.session)
            refresh = token_store.find_refresh_token(second["refresh_token"], db.session)
            assert access.is_valid
            assert refresh.is_valid
            assert access.refresh_token_id == refresh.id

    def test_old_access_token_rejected_after_new_login(self, client):
        signup(client, "alice")
        first = login(client, "alice")
        login(client, "alice")

        resp = client.get("/api/v1/auth/me", headers=auth_headers(first["access_token"]))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_REVOKED"

    def test_old_refresh_token_rejected_after_new_login(self, client):
        signup(client, "alice")
        first = login(client, "alice")
        login(client, "alice")

        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers=auth_headers(first["refresh_token"]),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_REVOKED"

    def test_logins_of_other_users_are_unaffected(self, client, app):
        alice = signup_and_login(client, "alice")
        signup_and_login(client, "bob")

        resp = client.get("/api/v1/auth/me", headers=auth_headers(alice["access_token"]))
        assert resp.status_code == 200
        assert count_rows(app, "access_tokens", VALID) == 2


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/refresh-token
# ═══════════════════════════════════════════════════════════════════════════

class TestRefresh:

    def test_refresh_returns_new_access_token_and_same_refresh_token(self, client):
        data = signup_and_login(client, "alice")

        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers=auth_headers(data["refresh_token"]),
        )
        assert resp.status_code == 200
        body = resp.get_json()["data"]
        assert set(body) == {"access_token", "refresh_token"}
        assert body["access_token"] != data["access_token"]
        assert body["refresh_token"] == data["refresh_token"]

    def test_refresh_revokes_previous_access_token(self, client, app):
        data = signup_and_login(client, "alice")
        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers=auth_headers(data["refresh_token"]),
        )
        new_access = resp.get_json()["data"]["access_token"]

        old = client.get("/api/v1/auth/me", headers=auth_headers(data["access_token"]))
        assert old.status_code == 401
        new = client.get("/api/v1/auth/me", headers=auth_headers(new_access))
        assert new.status_code == 200

        assert count_rows(app, "access_tokens", VALID) == 1
        assert count_rows(app, "refresh_tokens", VALID) == 1

    def test_refresh_links_new_access_token_to_same_refresh_row(self, client, app):
        data = signup_and_login(client, "alice")
        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers=auth_headers(data["refresh_token"]),
        )
        new_access = resp.get_json()["data"]["access_token"]

        with app.app_context():
            refresh = token_store.find_refresh_token(data["refresh_token"], db.session)
            lineage = token_store.access_tokens_for_refresh(refresh.id, db.session)
            assert len(lineage) == 2
            assert lineage[-1].token_hash == token_store.hash_token(new_access)

    def test_refresh_can_be_repeated(self, client):
        data = signup_and_login(client, "alice")
        headers = auth_headers(data["refresh_token"])
        assert client.post("/api/v1/auth/refresh-token", headers=headers).status_code == 200
        assert client.post("/api/v1/auth/refresh-token", headers=headers).status_code == 200

    def test_missing_header_returns_401_token_missing(self, client):
        resp = client.post("/api/v1/auth/refresh-token")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_malformed_header_returns_401(self, client):
        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers={"Authorization": "Token abc"},
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MALFORMED"

    def test_unknown_refresh_token_returns_401(self, client):
        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers=auth_headers("completely.invalid.token"),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_UNKNOWN"

    def test_access_token_cannot_be_used_as_refresh_token(self, client):
        data = signup_and_login(client, "alice")
        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers=auth_headers(data["access_token"]),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_UNKNOWN"

    def test_expired_refresh_token_returns_401_and_persists_nothing(self, client, app):
        signup_and_login(client, "alice")

        with app.app_context():
            user_id = db.session.execute(
                text("SELECT id FROM users WHERE username = 'alice'")
            ).scalar_one()
            expired_codec = TokenCodec(
                secret_key=app.config["JWT_SECRET_KEY"],
                algorithm=app.config["JWT_ALGORITHM"],
                access_ttl=timedelta(seconds=-10),
                refresh_ttl=timedelta(seconds=-10),
            )
            claims = {"sub": str(user_id), "role": "user"}
            raw_refresh = expired_codec.issue(claims, REFRESH)
            record = token_store.save_refresh_token(raw_refresh, user_id, db.session)
            token_store.save_access_token(
                expired_codec.issue(claims, ACCESS), user_id, record, db.session,
            )
            db.session.commit()

        before = count_rows(app, "access_tokens")
        resp = client.post("/api/v1/auth/refresh-token", headers=auth_headers(raw_refresh))

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"
        assert count_rows(app, "access_tokens") == before

    def test_refresh_after_logout_returns_401(self, client):
        data = signup_and_login(client, "alice")
        client.post("/api/v1/auth/logout", headers=auth_headers(data["access_token"]))

        resp = client.post(
            "/api/v1/auth/refresh-token",
            headers=auth_headers(data["refresh_token"]),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_REVOKED"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/logout
# ═══════════════════════════════════════════════════════════════════════════

class TestLogout:

    def test_logout_success_returns_200_and_revokes_pair(self, client, app):
        data = signup_and_login(client, "alice")
        resp = client.post("/api/v1/auth/logout", headers=auth_headers(data["access_token"]))

        assert resp.status_code == 200
        assert "message" in resp.get_json()["data"]
        assert count_rows(app, "access_tokens", VALID) == 0
        assert count_rows(app, "refresh_tokens", VALID) == 0

    def test_access_token_unusable_after_logout(self, client):
        data = signup_and_login(client, "alice")
        client.post("/api/v1/auth/logout", headers=auth_headers(data["access_token"]))

        resp = client.get("/api/v1/auth/me", headers=auth_headers(data["access_token"]))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_REVOKED"

    def test_double_logout_is_idempotent(self, client, app):
        data = signup_and_login(client, "alice")
        headers = auth_headers(data["access_token"])

        first = client.post("/api/v1/auth/logout", headers=headers)
        revoked_after_first = count_rows(app, "access_tokens", "revoked")
        second = client.post("/api/v1/auth/logout", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert count_rows(app, "access_tokens", "revoked") == revoked_after_first
        assert count_rows(app, "refresh_tokens", VALID) == 0

    def test_logout_without_header_returns_401(self, client):
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_logout_with_unknown_token_returns_401(self, client):
        resp = client.post("/api/v1/auth/logout", headers=auth_headers("a.b.c"))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_UNKNOWN"


# ═══════════════════════════════════════════════════════════════════════════
# GET /auth/me
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_user_profile(self, client):
        data = signup_and_login(client, "alice")
        resp = client.get("/api/v1/auth/me", headers=auth_headers(data["access_token"]))
        assert resp.status_code == 200
        user = resp.get_json()["data"]
        assert user["username"] == "alice"
        assert user["role"] == "user"
        assert "password_hash" not in user

    def test_me_without_token_returns_401_token_missing(self, client):
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_me_with_garbage_token_returns_401(self, client):
        resp = client.get("/api/v1/auth/me", headers=auth_headers("bad.token.here"))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MALFORMED"

    def test_me_with_refresh_token_returns_401(self, client):
        data = signup_and_login(client, "alice")
        resp = client.get("/api/v1/auth/me", headers=auth_headers(data["refresh_token"]))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_UNKNOWN"

    def test_me_with_malformed_bearer_header_returns_401(self, client):
        resp = client.get("/api/v1/auth/me", headers={"Authorization": "notbearer xyz"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MALFORMED"


# ═══════════════════════════════════════════════════════════════════════════
# Error envelope format
# ═══════════════════════════════════════════════════════════════════════════

class TestErrorEnvelope:

    def test_error_response_has_correct_envelope(self, client):
        resp = client.post("/api/v1/auth/login", json={
            "identifier": "nobody", "secret": "correct1",
        })
        body = resp.get_json()
        assert "error" in body
        error = body["error"]
        assert "code"    in error
        assert "message" in error
        assert "Traceback" not in str(body)

    def test_success_response_has_data_and_warnings_keys(self, client):
        body = signup(client, "carol").get_json()
        assert "data"     in body
        assert "warnings" in body
