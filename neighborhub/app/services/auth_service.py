"""
services/auth_service.py — Session lifecycle: signup, login, refresh, logout.

Responsibilities:
  - User registration with uniqueness checks (username, phone, email)
  - Login: credential check, token pair issuance, revocation of prior tokens
  - Refresh: new access token from a stored, valid refresh token
  - Logout: revocation of the caller's access token and its refresh token

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes beyond AppError
  - Functions only flush; the route commits once, so each flow is one
    transaction.

Session state per user lineage:
  Unauthenticated → Authenticated(access, refresh)
                  → Rotated(new access, same refresh)   on refresh
                  → Revoked                             on logout or next login

Invariant: at most one valid access token per user. Every issuance revokes
all previously valid access tokens of that user first.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from neighborhub.app.errors import AppError, ErrorCode
from neighborhub.app.models.user import ROLE_USER, User
from neighborhub.app.repositories import token_store
from neighborhub.app.security import credentials
from neighborhub.app.security.identity import Identity
from neighborhub.app.security.token_codec import (
    ACCESS,
    REFRESH,
    TokenCodec,
    extract_bearer,
    get_codec,
)
from neighborhub.app.services.user_service import user_to_dict

logger = logging.getLogger(__name__)

SIGNUP_SUCCESS_MESSAGE = "User registered successfully!"


# ── Private helpers ────────────────────────────────────────────────────────

def _claims_for(user: User) -> dict:
    return {"sub": str(user.id), "role": user.role}


def _revoke_all_user_access_tokens(user_id: int, session: Session) -> list:
    """Revokes every valid access token of `user_id`; returns the revoked rows."""
    tokens = token_store.valid_access_tokens_for(user_id, session)
    token_store.revoke_all(tokens, session)
    return tokens


def _revoke_superseded_refresh_tokens(access_tokens: list, session: Session) -> int:
    """
    Revokes the refresh tokens behind access tokens that a new login replaces.

    A fresh login supersedes the previous session lineage entirely; without
    this the old refresh token could keep minting access tokens.
    """
    refresh_ids = {token.refresh_token_id for token in access_tokens}
    stale = []
    for refresh_id in sorted(refresh_ids):
        record = token_store.get_refresh_token(refresh_id, session)
        if record is not None and record.is_valid:
            stale.append(record)
    return token_store.revoke_all(stale, session)


def _load_user_for_subject(subject: str, session: Session) -> User:
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the token is not a valid user ID.",
            401,
        )

    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "The user this token was issued to no longer exists.",
            401,
        )
    return user


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        username: str,
        email: str,
        phone: str,
        secret: str,
        session: Session,
) -> dict:
    """
    Creates a new user account with role "user". Issues no tokens; the client
    logs in afterwards.

    Raises:
      AppError(USERNAME_TAKEN, 400) — username already exists
      AppError(PHONE_TAKEN, 400)    — phone already exists
      AppError(EMAIL_TAKEN, 400)    — email already exists

    Returns: {"message": "User registered successfully!"}
    """
    checks = (
        (User.username, username, ErrorCode.USERNAME_TAKEN, "username",
         f"The username '{username}' is already taken."),
        (User.phone, phone, ErrorCode.PHONE_TAKEN, "phone",
         "The phone number is already registered."),
        (User.email, email, ErrorCode.EMAIL_TAKEN, "email",
         f"The email address '{email}' is already registered."),
    )
    for column, value, code, field, message in checks:
        existing = session.execute(
            select(User.id).where(column == value)
        ).scalar_one_or_none()
        if existing is not None:
            raise AppError(code, message, 400, field=field)

    user = User(
        username=username,
        email=email,
        phone=phone,
        password_hash=credentials.hash_secret(secret),
        role=ROLE_USER,
    )
    session.add(user)
    session.flush()

    logger.info("Registered user id=%s", user.id)
    return {"message": SIGNUP_SUCCESS_MESSAGE}


def login_user(
        identifier: str,
        secret: str,
        session: Session,
        codec: TokenCodec | None = None,
) -> dict:
    """
    Validates credentials and issues a new access + refresh token pair.

    Every successful login:
      1. revokes all previously valid access tokens of the user,
      2. revokes the refresh tokens those access tokens were minted from,
      3. stores the new refresh token, then the new access token linked to it.

    Raises:
      AppError(INVALID_CREDENTIALS, 400) — unknown identifier or wrong secret.

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    codec = codec or get_codec()

    try:
        user = credentials.authenticate(identifier, secret, session)
    except AppError:
        logger.warning("Failed login attempt")
        raise

    claims = _claims_for(user)
    access_token = codec.issue(claims, ACCESS)
    refresh_token = codec.issue(claims, REFRESH)

    superseded = _revoke_all_user_access_tokens(user.id, session)
    _revoke_superseded_refresh_tokens(superseded, session)

    refresh_record = token_store.save_refresh_token(refresh_token, user.id, session)
    token_store.save_access_token(access_token, user.id, refresh_record, session)

    logger.info(
        "Login user id=%s; revoked %d prior access token(s)",
        user.id,
        len(superseded),
    )
    return {
        "user": user_to_dict(user),
        "access_token": access_token,
        "refresh_token": refresh_token,
    }


def refresh_access_token(
        auth_header: str | None,
        session: Session,
        codec: TokenCodec | None = None,
) -> dict:
    """
    Exchanges the refresh token in "Authorization: Bearer <token>" for a new
    access token. The refresh token itself is NOT rotated; the same string is
    returned and stays valid until logout or the next login.

    Raises (all 401; nothing is persisted on failure):
      TOKEN_MISSING / TOKEN_MALFORMED — header absent or not a Bearer token
      TOKEN_UNKNOWN                   — no stored refresh token matches
      TOKEN_MALFORMED / TOKEN_INVALID — undecodable JWT or bad subject
      USER_NOT_FOUND                  — subject no longer exists
      TOKEN_INVALID / TOKEN_EXPIRED   — signature, type or expiry check failed
      TOKEN_REVOKED                   — stored row is revoked or expired

    Returns: {"access_token": "...", "refresh_token": "<unchanged>"}
    """
    codec = codec or get_codec()
    raw_token = extract_bearer(auth_header)

    record = token_store.find_refresh_token(raw_token, session)
    if record is None:
        raise AppError(
            ErrorCode.TOKEN_UNKNOWN,
            "The refresh token was not issued by this server.",
            401,
        )

    user = _load_user_for_subject(codec.subject_of(raw_token), session)
    if user.id != record.user_id:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The refresh token does not belong to its subject.",
            401,
        )

    codec.verify(raw_token, expected_kind=REFRESH)
    if not record.is_valid:
        logger.warning("Refresh attempted with revoked token for user id=%s", user.id)
        raise AppError(
            ErrorCode.TOKEN_REVOKED,
            "The refresh token has been revoked or has expired.",
            401,
        )

    access_token = codec.issue(_claims_for(user), ACCESS)
    superseded = _revoke_all_user_access_tokens(user.id, session)
    token_store.save_access_token(access_token, user.id, record, session)

    logger.info(
        "Refreshed access token for user id=%s; revoked %d prior access token(s)",
        user.id,
        len(superseded),
    )
    return {
        "access_token": access_token,
        "refresh_token": raw_token,
    }


def logout_user(auth_header: str | None, session: Session) -> bool:
    """
    Revokes the access token in "Authorization: Bearer <token>", the refresh
    token it was minted from, and any other access token of that lineage.

    Idempotent: logging out with an already-revoked token changes nothing
    and succeeds.

    Raises:
      TOKEN_MISSING / TOKEN_MALFORMED (401) — header absent or not a Bearer token
      TOKEN_UNKNOWN (401)                   — no stored access token matches

    Returns: True if anything was revoked, False for a repeated logout.
    """
    raw_token = extract_bearer(auth_header)

    access = token_store.find_access_token(raw_token, session)
    if access is None:
        raise AppError(
            ErrorCode.TOKEN_UNKNOWN,
            "The access token was not issued by this server.",
            401,
        )

    refresh = token_store.get_refresh_token(access.refresh_token_id, session)
    lineage = (
        token_store.access_tokens_for_refresh(refresh.id, session)
        if refresh is not None
        else [access]
    )
    pending = [
        token for token in (*lineage, refresh)
        if token is not None and token.is_valid
    ]
    revoked = token_store.revoke_all(pending, session)

    if revoked:
        logger.info("Logout user id=%s", access.user_id)
    else:
        logger.debug("Repeated logout for user id=%s", access.user_id)
    return revoked > 0


def get_current_user(identity: Identity, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — user deleted between token issue and request.
    """
    user = session.get(User, identity.user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {identity.user_id} not found.",
            404,
        )
    return user_to_dict(user)
