"""
models/access_token.py — AccessToken table definition.

Every access token issued at login or refresh gets a row here, linked to the
refresh token it was minted with. Rows are never deleted in normal operation;
they are flagged revoked/expired and kept as an audit trail.

FK policy:
  user_id          ON DELETE CASCADE — token is owned by the user.
  refresh_token_id ON DELETE CASCADE — token lineage dies with its refresh token.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from neighborhub.app.extensions import db


class AccessToken(db.Model):
    __tablename__ = "access_tokens"

    __table_args__ = (
        # valid_access_tokens_for() filters on all three columns.
        Index("idx_access_tokens_user_valid", "user_id", "revoked", "expired"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    refresh_token_id: Mapped[int] = mapped_column(
        ForeignKey("refresh_tokens.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    revoked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    expired: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    @property
    def is_valid(self) -> bool:
        return not self.revoked and not self.expired

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<AccessToken id={self.id} "
            f"user_id={self.user_id} "
            f"refresh_token_id={self.refresh_token_id} "
            f"revoked={self.revoked} expired={self.expired}>"
        )
