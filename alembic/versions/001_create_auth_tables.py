"""Create authentication tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _user_fk(**kwargs) -> sa.Column:
    return sa.Column(
        "user_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        **kwargs,
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def upgrade() -> None:
    """Create users and the tables they own."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("role", sa.String(10), nullable=False),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("role IN ('PARENT', 'CHILD')", name="users_role_check"),
    )

    op.create_table(
        "refresh_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _user_fk(),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_token_hash"),
    )
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_refresh_tokens_expires_at", "refresh_tokens", ["expires_at"])

    op.create_table(
        "oauth_accounts",
        _uuid_pk(),
        sa.Column("provider", sa.String(10), nullable=False),
        sa.Column("provider_id", sa.Text(), nullable=False),
        _user_fk(),
        _created_at(),
        sa.UniqueConstraint(
            "provider", "provider_id", name="uq_oauth_accounts_provider_provider_id"
        ),
        sa.CheckConstraint(
            "provider IN ('GOOGLE', 'APPLE')", name="oauth_accounts_provider_check"
        ),
    )
    op.create_index("ix_oauth_accounts_user_id", "oauth_accounts", ["user_id"])

    op.create_table(
        "verification_requests",
        _uuid_pk(),
        _user_fk(),
        sa.Column("role", sa.String(10), nullable=False),
        sa.Column(
            "status", sa.String(10), nullable=False, server_default=sa.text("'PENDING'")
        ),
        sa.Column("id_image_url", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="verification_requests_status_check",
        ),
    )
    op.create_index("ix_verification_requests_user_id", "verification_requests", ["user_id"])

    op.create_table(
        "parent_profiles",
        _uuid_pk(),
        _user_fk(),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("number_of_children", sa.Integer(), nullable=False),
        sa.Column("monthly_income_base", sa.Numeric(12, 2), nullable=False),
        sa.Column("monthly_rent_base", sa.Numeric(12, 2), nullable=True),
        sa.Column("monthly_loans_base", sa.Numeric(12, 2), nullable=True),
        sa.Column("other_notes", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("user_id", name="uq_parent_profiles_user_id"),
    )


def downgrade() -> None:
    """Drop the authentication tables."""
    op.drop_table("parent_profiles")
    op.drop_index("ix_verification_requests_user_id", table_name="verification_requests")
    op.drop_table("verification_requests")
    op.drop_index("ix_oauth_accounts_user_id", table_name="oauth_accounts")
    op.drop_table("oauth_accounts")
    op.drop_index("ix_refresh_tokens_expires_at", table_name="refresh_tokens")
    op.drop_index("ix_refresh_tokens_user_id", table_name="refresh_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("users")
