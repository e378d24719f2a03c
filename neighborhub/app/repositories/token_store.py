"""
repositories/token_store.py — Persistence for issued access and refresh tokens.

All functions take the request's SQLAlchemy session and only flush; the
route commits once at the end of the request, which makes every
"revoke + issue" sequence a single transaction. No token state is kept in
memory between requests.

Tokens are looked up by the SHA-256 digest of the JWT string, never by the
raw value.
"""

from __future__ import annotations

import hashlib
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from neighborhub.app.models.access_token import AccessToken
from neighborhub.app.models.refresh_token import RefreshToken


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def save_refresh_token(raw_token: str, user_id: int, session: Session) -> RefreshToken:
    record = RefreshToken(
        user_id=user_id,
        token_hash=hash_token(raw_token),
        revoked=False,
        expired=False,
    )
    session.add(record)
    # flush so record.id exists for the access token FK
    session.flush()
    return record


def save_access_token(
        raw_token: str,
        user_id: int,
        refresh_token: RefreshToken,
        session: Session,
) -> AccessToken:
    record = AccessToken(
        user_id=user_id,
        refresh_token_id=refresh_token.id,
        token_hash=hash_token(raw_token),
        revoked=False,
        expired=False,
    )
    session.add(record)
    session.flush()
    return record


def find_access_token(raw_token: str, session: Session) -> AccessToken | None:
    return session.execute(
        select(AccessToken).where(AccessToken.token_hash == hash_token(raw_token))
    ).scalar_one_or_none()


def find_refresh_token(raw_token: str, session: Session) -> RefreshToken | None:
    return session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw_token))
    ).scalar_one_or_none()


def get_refresh_token(refresh_token_id: int, session: Session) -> RefreshToken | None:
    return session.get(RefreshToken, refresh_token_id)


def valid_access_tokens_for(user_id: int, session: Session) -> list[AccessToken]:
    """Access tokens of `user_id` that are neither revoked nor expired."""
    return list(
        session.execute(
            select(AccessToken).where(
                AccessToken.user_id == user_id,
                AccessToken.revoked.is_(False),
                AccessToken.expired.is_(False),
            )
        ).scalars().all()
    )


def access_tokens_for_refresh(refresh_token_id: int, session: Session) -> list[AccessToken]:
    """All access tokens minted from the given refresh token, oldest first."""
    return list(
        session.execute(
            select(AccessToken)
            .where(AccessToken.refresh_token_id == refresh_token_id)
            .order_by(AccessToken.id)
        ).scalars().all()
    )


def revoke_all(tokens: Iterable[AccessToken | RefreshToken], session: Session) -> int:
    """
    Flags every token revoked AND expired in one flush.

    Nothing is visible to other transactions until the caller commits, so a
    concurrent reader never sees a half-revoked set. Returns the number of
    rows touched.
    """
    count = 0
    for token in tokens:
        token.revoked = True
        token.expired = True
        count += 1
    if count:
        session.flush()
    return count


def delete_tokens_for_user(user_id: int, session: Session) -> None:
    """
    Removes every token row of a user. Only used when the user itself is
    deleted; access tokens go first because they reference refresh tokens.
    """
    for access in session.execute(
        select(AccessToken).where(AccessToken.user_id == user_id)
    ).scalars().all():
        session.delete(access)
    session.flush()
    for refresh in session.execute(
        select(RefreshToken).where(RefreshToken.user_id == user_id)
    ).scalars().all():
        session.delete(refresh)
    session.flush()
