"""Verification request model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from finwise.models.base import metadata, utcnow

VERIFICATION_STATUSES = ("PENDING", "APPROVED", "REJECTED")

verification_requests = Table(
    "verification_requests",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("role", String(10), nullable=False),
    Column("status", String(10), nullable=False, default="PENDING", server_default="PENDING"),
    Column("id_image_url", Text, nullable=True),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    ),
    CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name="status"),
)
