"""
middleware/auth_middleware.py — Per-request bearer token authentication.

authenticate_request():
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Reads the subject from the token (lookup only, no verification yet)
  3. Finds the stored access token row; rejects unknown, revoked or
     expired rows
  4. Fully verifies signature, expiry and token type
  5. Loads the user and attaches Identity(user_id, role) to flask.g

Strict responsibility boundary:
  - This middleware authenticates (401) only. Role and ownership checks
    (403) belong in the service layer.
  - Services receive the Identity as a plain argument, with no knowledge of
    JWT or HTTP headers.

Error codes (all 401):
  TOKEN_MISSING   — no Authorization header
  TOKEN_MALFORMED — not "Bearer <token>", or undecodable JWT
  TOKEN_UNKNOWN   — no stored access token matches
  TOKEN_REVOKED   — stored row is revoked or expired
  TOKEN_INVALID   — bad signature, bad subject, or a refresh token
  TOKEN_EXPIRED   — exp claim in the past
  USER_NOT_FOUND  — subject no longer exists
"""

from __future__ import annotations

import logging

from flask import g, request
from sqlalchemy.orm import Session

from neighborhub.app.errors import AppError, ErrorCode
from neighborhub.app.models.user import User
from neighborhub.app.repositories import token_store
from neighborhub.app.security.identity import Identity
from neighborhub.app.security.token_codec import (
    ACCESS,
    TokenCodec,
    extract_bearer,
    get_codec,
)

logger = logging.getLogger(__name__)


def authenticate_token(
        raw_token: str,
        session: Session,
        codec: TokenCodec | None = None,
) -> Identity:
    """
    Resolves a raw access token into the caller's Identity.

    Separated from the Flask glue so it can be tested with a mocked session.
    """
    codec = codec or get_codec()
    subject = codec.subject_of(raw_token)

    record = token_store.find_access_token(raw_token, session)
    if record is None:
        raise AppError(
            ErrorCode.TOKEN_UNKNOWN,
            "The access token was not issued by this server.",
            401,
        )
    if not record.is_valid:
        raise AppError(
            ErrorCode.TOKEN_REVOKED,
            "The access token has been revoked. Log in again or refresh it.",
            401,
        )

    codec.verify(raw_token, expected_kind=ACCESS)

    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )
    if user_id != record.user_id:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not belong to its subject.",
            401,
        )

    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "The user this token was issued to no longer exists.",
            401,
        )

    # Role comes from the user row, not the claim, so role changes apply at once.
    return Identity(user_id=user.id, role=user.role)


def authenticate_request(session: Session) -> Identity:
    """
    Performs the full authentication sequence for the current request and
    sets flask.g.identity.

    On failure any partially built identity is cleared before the AppError
    propagates to the global error handler.
    """
    g.identity = None
    try:
        raw_token = extract_bearer(request.headers.get("Authorization"))
        identity = authenticate_token(raw_token, session)
    except AppError as err:
        g.pop("identity", None)
        logger.info("Rejected %s %s: %s", request.method, request.path, err.code)
        raise

    g.identity = identity
    return identity


def current_identity() -> Identity | None:
    """Identity of the caller, or None on an unauthenticated request."""
    return g.get("identity")


def require_identity() -> Identity:
    """
    Identity of the caller for handlers that need one.

    The route policy chain already rejects unauthenticated requests on
    AUTHENTICATED routes; this is the check for OPTIONAL routes.
    """
    identity = current_identity()
    if identity is None:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )
    return identity
