"""User model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from finwise.models.base import metadata, utcnow

USER_ROLES = ("PARENT", "CHILD")

users = Table(
    "users",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Lower-cased; the slot stays taken after soft delete
    Column("email", String(320), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    # Absent for OAuth-only identities
    Column("password_hash", Text, nullable=True),
    Column("role", String(10), nullable=False),
    Column("avatar_url", Text, nullable=True),
    # Audit
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    ),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    ),
    # Soft delete
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    CheckConstraint("role IN ('PARENT', 'CHILD')", name="role"),
)
