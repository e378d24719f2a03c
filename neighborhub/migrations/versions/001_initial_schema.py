"""Initial schema — users, refresh_tokens, access_tokens.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  Schema changes go in a NEW migration file.

Creation order (FK dependency order):
  users → refresh_tokens → access_tokens

ON DELETE policies:
  refresh_tokens.user_id          → CASCADE (token owned by user)
  access_tokens.user_id           → CASCADE (token owned by user)
  access_tokens.refresh_token_id  → CASCADE (lineage owned by its refresh token)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── Step 1: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default="user",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("phone", name="uq_users_phone"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    # ── Step 2: refresh_tokens ─────────────────────────────────────────────
    # token_hash is the SHA-256 hex digest of the issued JWT.

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column("expired", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
    )

    # ── Step 3: access_tokens ──────────────────────────────────────────────

    op.create_table(
        "access_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_access_tokens_user"),
            nullable=False,
        ),
        sa.Column(
            "refresh_token_id",
            sa.Integer(),
            sa.ForeignKey(
                "refresh_tokens.id",
                ondelete="CASCADE",
                name="fk_access_tokens_refresh_token",
            ),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column("expired", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_access_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_access_tokens_hash"),
    )

    # ── Step 4: indexes ────────────────────────────────────────────────────

    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_access_tokens_refresh_token_id", "access_tokens", ["refresh_token_id"])
    # Serves "valid access tokens for user" during login and refresh.
    op.create_index(
        "idx_access_tokens_user_valid",
        "access_tokens",
        ["user_id", "revoked", "expired"],
    )


def downgrade() -> None:
    """Drop all objects created in upgrade(), in reverse dependency order."""

    op.drop_index("idx_access_tokens_user_valid",      table_name="access_tokens")
    op.drop_index("ix_access_tokens_refresh_token_id", table_name="access_tokens")
    op.drop_index("ix_refresh_tokens_user_id",         table_name="refresh_tokens")

    op.drop_table("access_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("users")
