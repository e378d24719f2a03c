"""
security/token_codec.py — JWT encoding and verification.

Token design:
  - Both access and refresh tokens are JWTs signed with the process-wide key
    (JWT_SECRET_KEY / JWT_ALGORITHM), read once when the app is created.
  - Claims: sub (user_id as str), role, type ("access" | "refresh"),
    iat, exp, jti.
  - Access TTL: JWT_ACCESS_TOKEN_EXPIRES (default 15 min).
    Refresh TTL: JWT_REFRESH_TOKEN_EXPIRES (default 7 days).

Failure mapping (all 401, all terminal for the request):
  malformed JWT          → TOKEN_MALFORMED
  signature mismatch     → TOKEN_INVALID
  exp in the past        → TOKEN_EXPIRED
  wrong type / bad claim → TOKEN_INVALID

The codec has no Flask dependency of its own. create_app() builds one
instance and stores it in app.extensions; get_codec() fetches it.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from neighborhub.app.errors import AppError, ErrorCode


ACCESS = "access"
REFRESH = "refresh"

_EXTENSION_KEY = "token_codec"


class TokenCodec:

    def __init__(
            self,
            secret_key: str,
            algorithm: str,
            access_ttl: timedelta,
            refresh_ttl: timedelta,
    ) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._ttl = {ACCESS: access_ttl, REFRESH: refresh_ttl}

    @classmethod
    def from_config(cls, config) -> "TokenCodec":
        return cls(
            secret_key=config["JWT_SECRET_KEY"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
        )

    def issue(self, claims: dict, kind: str) -> str:
        """
        Creates a signed, time-bounded token of the given kind.

        `claims` must carry "sub"; any other keys (e.g. "role") are copied in.
        A random jti guarantees two tokens minted in the same second differ.
        """
        if kind not in self._ttl:
            raise ValueError(f"Unknown token kind: {kind!r}")

        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "sub": str(claims["sub"]),
            "type": kind,
            "iat": now,
            "exp": now + self._ttl[kind],
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str, expected_kind: str | None = None) -> dict:
        """Checks signature and expiry and returns the claims."""
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise AppError(
                ErrorCode.TOKEN_EXPIRED,
                "The token has expired.",
                401,
            )
        except jwt.InvalidSignatureError:
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                "The token signature is invalid.",
                401,
            )
        except jwt.DecodeError:
            raise AppError(
                ErrorCode.TOKEN_MALFORMED,
                "The token is malformed.",
                401,
            )
        except jwt.InvalidTokenError:
            # Missing required claims, bad iat, etc.
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                "The token is invalid.",
                401,
            )

        if expected_kind is not None and claims.get("type") != expected_kind:
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                f"Expected a {expected_kind} token.",
                401,
            )
        return claims

    def subject_of(self, token: str) -> str:
        """
        Reads the sub claim WITHOUT verifying signature or expiry.

        For lookups only. Any authorization decision must go through verify().
        """
        try:
            claims = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
            )
        except jwt.InvalidTokenError:
            raise AppError(
                ErrorCode.TOKEN_MALFORMED,
                "The token is malformed.",
                401,
            )

        sub = claims.get("sub")
        if sub is None:
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                "The token is missing the required 'sub' claim.",
                401,
            )
        return str(sub)


def extract_bearer(auth_header: str | None) -> str:
    """
    Returns the raw token from an "Authorization: Bearer <token>" header.

    Raises:
      AppError(TOKEN_MISSING, 401)   — header absent or empty
      AppError(TOKEN_MALFORMED, 401) — not in "Bearer <token>" form
    """
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_MALFORMED,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return parts[1]


def init_codec(app) -> TokenCodec:
    codec = TokenCodec.from_config(app.config)
    app.extensions[_EXTENSION_KEY] = codec
    return codec


def get_codec() -> TokenCodec:
    return current_app.extensions[_EXTENSION_KEY]
