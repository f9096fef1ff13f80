"""Accounts and pending verification records."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    """Create the account and pending verification tables."""
    op.create_table(
        "accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("first_name", sa.String(length=60), nullable=False),
        sa.Column("last_name", sa.String(length=60), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("preferred_language", sa.String(length=8), nullable=False),
        sa.Column("notification_token", sa.Text(), nullable=True),
        sa.Column("password_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("profile", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('buyer', 'seller', 'admin')", name=op.f("ck_accounts_role_allowed")
        ),
        sa.CheckConstraint(
            "profile ->> 'role' = role", name=op.f("ck_accounts_profile_matches_role")
        ),
        sa.PrimaryKeyConstraint("id", name="pk_accounts"),
        sa.UniqueConstraint("email", name=op.f("uq_accounts_email")),
    )

    op.create_table(
        "pending_verifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("code_hash", sa.String(length=255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "purpose IN ('email_verification', 'password_reset')",
            name=op.f("ck_pending_verifications_purpose_allowed"),
        ),
        sa.CheckConstraint(
            "(purpose = 'email_verification') = (payload IS NOT NULL)",
            name=op.f("ck_pending_verifications_payload_only_for_signup"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_pending_verifications"),
        sa.UniqueConstraint(
            "email", "purpose", name="uq_pending_verifications_email_purpose"
        ),
    )
    op.create_index(
        "ix_pending_verifications_expires_at",
        "pending_verifications",
        ["expires_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop the account and pending verification tables."""
    op.drop_index("ix_pending_verifications_expires_at", table_name="pending_verifications")
    op.drop_table("pending_verifications")
    op.drop_table("accounts")
