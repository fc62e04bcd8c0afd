"""Parent profile model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from finwise.models.base import metadata, utcnow

parent_profiles = Table(
    "parent_profiles",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    # ISO-2 country code
    Column("country", String(2), nullable=False),
    Column("number_of_children", Integer, nullable=False),
    Column("monthly_income_base", Numeric(12, 2, asdecimal=False), nullable=False),
    Column("monthly_rent_base", Numeric(12, 2, asdecimal=False), nullable=True),
    Column("monthly_loans_base", Numeric(12, 2, asdecimal=False), nullable=True),
    Column("other_notes", Text, nullable=True),
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    ),
)
