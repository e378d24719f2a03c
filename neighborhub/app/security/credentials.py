"""
security/credentials.py — Secret hashing and credential verification.

Password storage:
  - Hashed with bcrypt (cost factor from config BCRYPT_LOG_ROUNDS, default 12)
  - Raw secret is never stored, never logged

Timing:
  bcrypt.checkpw compares in constant time. When the identifier matches no
  user we still run checkpw against a fixed dummy hash, so "unknown user" and
  "wrong secret" cost the same and cannot be told apart by response time.
"""

from __future__ import annotations

import functools
import secrets

import bcrypt
from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from neighborhub.app.errors import AppError, ErrorCode
from neighborhub.app.models.user import User


@functools.lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> bytes:
    """Hash of a random value nobody knows, at the configured cost."""
    return bcrypt.hashpw(secrets.token_bytes(16), bcrypt.gensalt(rounds=rounds))


def hash_secret(secret: str, rounds: int | None = None) -> str:
    if rounds is None:
        rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        secret.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def check_secret(secret: str, password_hash: str | None) -> bool:
    """Constant-time comparison of `secret` against a stored bcrypt hash."""
    if password_hash:
        stored = password_hash.encode("utf-8")
    else:
        stored = _dummy_hash(current_app.config.get("BCRYPT_LOG_ROUNDS", 12))
    try:
        matched = bcrypt.checkpw(secret.encode("utf-8"), stored)
    except ValueError:
        # Corrupt stored hash; treat like a mismatch.
        return False
    return matched and password_hash is not None


def authenticate(identifier: str, secret: str, session: Session) -> User:
    """
    Resolves `identifier` as a username OR an email and checks `secret`.

    Raises:
      AppError(INVALID_CREDENTIALS, 400) — no such user or wrong secret.
      The same error is used for both to avoid account enumeration.
    """
    user = session.execute(
        select(User).where(
            or_(User.username == identifier, User.email == identifier)
        )
    ).scalars().first()

    if not check_secret(secret, user.password_hash if user is not None else None):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The identifier or secret is incorrect.",
            400,
        )
    return user
