"""Create account and account_token tables.

Revision ID: 001_account_tables
Revises:
Create Date: 2026-10-19

- account: registered identities (email unique, verified flag)
- account_token: single-use registration / password-reset tokens
- Partial unique index: at most one unused token per (account, kind)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_account_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # =========================================================================
    # account
    # =========================================================================
    op.create_table(
        "account",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(180), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "roles",
            sa.JSON(),
            server_default=sa.text("'[\"ROLE_USER\"]'"),
            nullable=False,
        ),
        sa.Column(
            "verified", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.UniqueConstraint("email", name="uq_account_email"),
    )

    # =========================================================================
    # account_token
    # =========================================================================
    op.create_table(
        "account_token",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "account_id",
            UUID(as_uuid=True),
            sa.ForeignKey("account.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("value", sa.String(64), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.UniqueConstraint("value", name="uq_account_token_value"),
        sa.CheckConstraint(
            "kind IN ('registration', 'password_reset')",
            name="ck_account_token_kind",
        ),
    )
    op.create_index("ix_account_token_account_id", "account_token", ["account_id"])
    op.create_index("idx_account_token_expires_at", "account_token", ["expires_at"])

    # Concurrent issuance for the same (account, kind) cannot leave two
    # live tokens behind
    op.create_index(
        "uq_account_token_live_kind",
        "account_token",
        ["account_id", "kind"],
        unique=True,
        postgresql_where=sa.text("used = false"),
    )


def downgrade() -> None:
    op.drop_index("uq_account_token_live_kind", table_name="account_token")
    op.drop_index("idx_account_token_expires_at", table_name="account_token")
    op.drop_index("ix_account_token_account_id", table_name="account_token")
    op.drop_table("account_token")
    op.drop_table("account")
