"""
services/user_service.py — User profile operations used by the auth layer.

Also owns the explicit User → dict mapping returned to clients. Every
response that contains a user goes through user_to_dict(); password_hash
never leaves this module.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from neighborhub.app.errors import AppError, ErrorCode
from neighborhub.app.models.user import User
from neighborhub.app.repositories import token_store
from neighborhub.app.security.identity import Identity

logger = logging.getLogger(__name__)


def user_to_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return user


def list_users(session: Session) -> list[dict]:
    users = session.execute(select(User).order_by(User.id)).scalars().all()
    return [user_to_dict(user) for user in users]


def update_profile(identity: Identity, changes: dict, session: Session) -> dict:
    """
    Applies username / email / phone changes to the caller's own profile.

    Raises:
      AppError(USER_NOT_FOUND, 404)
      AppError(USERNAME_TAKEN | EMAIL_TAKEN | PHONE_TAKEN, 400) — value owned
        by another user
    """
    user = _get_user_or_404(identity.user_id, session)

    unique_fields = (
        ("username", User.username, ErrorCode.USERNAME_TAKEN),
        ("email", User.email, ErrorCode.EMAIL_TAKEN),
        ("phone", User.phone, ErrorCode.PHONE_TAKEN),
    )
    for field, column, code in unique_fields:
        if field not in changes or changes[field] == getattr(user, field):
            continue
        owner = session.execute(
            select(User.id).where(column == changes[field])
        ).scalar_one_or_none()
        if owner is not None:
            raise AppError(code, f"That {field} is already in use.", 400, field=field)
        setattr(user, field, changes[field])

    session.flush()
    return user_to_dict(user)


def delete_user(identity: Identity, user_id: int, session: Session) -> None:
    """
    Hard-deletes a user together with all of their token rows.

    Raises:
      AppError(FORBIDDEN, 403)      — caller is not an admin
      AppError(USER_NOT_FOUND, 404) — no such user
    """
    if not identity.is_admin:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only administrators may delete users.",
            403,
        )

    user = _get_user_or_404(user_id, session)
    token_store.delete_tokens_for_user(user.id, session)
    session.delete(user)
    session.flush()
    logger.info("User id=%s deleted by admin id=%s", user_id, identity.user_id)
