"""OAuth account link model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)

from finwise.models.base import metadata, utcnow

OAUTH_PROVIDERS = ("GOOGLE", "APPLE")

oauth_accounts = Table(
    "oauth_accounts",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("provider", String(10), nullable=False),
    # Subject claim issued by the provider
    Column("provider_id", Text, nullable=False),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    ),
    UniqueConstraint("provider", "provider_id", name="uq_oauth_accounts_provider_provider_id"),
    CheckConstraint("provider IN ('GOOGLE', 'APPLE')", name="provider"),
)
