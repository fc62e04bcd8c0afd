"""User store: queries over users and the rows they own.

Methods never commit; callers decide the transaction boundary so that several
writes can land atomically.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.models.base import as_utc, utcnow
from finwise.models.oauth_accounts import oauth_accounts
from finwise.models.parent_profiles import parent_profiles
from finwise.models.users import users
from finwise.models.verification_requests import verification_requests
from finwise.schemas.auth import ParentSignupRequest

DEFAULT_VERIFICATION_STATUS = "PENDING"


def _to_dict(row: Mapping[str, Any] | None) -> dict | None:
    if row is None:
        return None
    return {
        key: as_utc(value) if isinstance(value, datetime) else value
        for key, value in dict(row).items()
    }


class UserService:
    """Service for user operations."""

    async def get_user_by_id(
        self, db: AsyncSession, user_id: UUID, include_deleted: bool = False
    ) -> dict | None:
        """Get user by internal ID, skipping soft-deleted rows unless asked."""
        query = select(users).where(users.c.id == user_id)
        if not include_deleted:
            query = query.where(users.c.deleted_at.is_(None))
        result = await db.execute(query)
        return _to_dict(result.mappings().first())

    async def get_user_by_email(
        self, db: AsyncSession, email: str, include_deleted: bool = False
    ) -> dict | None:
        """Get user by email."""
        query = select(users).where(users.c.email == email.lower())
        if not include_deleted:
            query = query.where(users.c.deleted_at.is_(None))
        result = await db.execute(query)
        return _to_dict(result.mappings().first())

    async def email_exists(self, db: AsyncSession, email: str) -> bool:
        """Check whether an email slot is taken, soft-deleted users included."""
        query = select(func.count()).select_from(users).where(users.c.email == email.lower())
        result = await db.execute(query)
        return result.scalar_one() > 0

    async def create_user(
        self,
        db: AsyncSession,
        email: str,
        name: str,
        role: str,
        password_hash: str | None = None,
    ) -> dict:
        """Insert a user row and return it."""
        now = utcnow()
        values = {
            "id": uuid4(),
            "email": email.lower(),
            "name": name,
            "password_hash": password_hash,
            "role": role,
            "avatar_url": None,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
        }
        await db.execute(insert(users).values(**values))
        return values

    async def update_password_hash(
        self, db: AsyncSession, user_id: UUID, password_hash: str
    ) -> None:
        """Replace a user's stored password hash."""
        await db.execute(
            update(users)
            .where(users.c.id == user_id)
            .values(password_hash=password_hash, updated_at=utcnow())
        )

    async def soft_delete_user(self, db: AsyncSession, user_id: UUID) -> None:
        """Mark a user deleted; the email stays reserved."""
        now = utcnow()
        await db.execute(
            update(users)
            .where(users.c.id == user_id, users.c.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
        )

    async def create_verification_request(
        self,
        db: AsyncSession,
        user_id: UUID,
        role: str,
        id_image_url: str | None = None,
    ) -> dict:
        """Insert a pending verification request for a new user."""
        values = {
            "id": uuid4(),
            "user_id": user_id,
            "role": role,
            "status": DEFAULT_VERIFICATION_STATUS,
            "id_image_url": id_image_url,
            "created_at": utcnow(),
        }
        await db.execute(insert(verification_requests).values(**values))
        return values

    async def get_verification_status(self, db: AsyncSession, user_id: UUID) -> str:
        """Status of the user's most recent verification request."""
        query = (
            select(verification_requests.c.status)
            .where(verification_requests.c.user_id == user_id)
            .order_by(verification_requests.c.created_at.desc())
            .limit(1)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none() or DEFAULT_VERIFICATION_STATUS

    async def create_parent_profile(
        self, db: AsyncSession, user_id: UUID, profile: ParentSignupRequest
    ) -> dict:
        """Insert the parent profile captured at signup."""
        values = {
            "id": uuid4(),
            "user_id": user_id,
            "country": profile.country,
            "number_of_children": profile.number_of_children,
            "monthly_income_base": profile.monthly_income_base,
            "monthly_rent_base": profile.monthly_rent_base,
            "monthly_loans_base": profile.monthly_loans_base,
            "other_notes": profile.other_notes,
            "created_at": utcnow(),
        }
        await db.execute(insert(parent_profiles).values(**values))
        return values

    async def get_parent_profile(self, db: AsyncSession, user_id: UUID) -> dict | None:
        """Get a parent's profile, if any."""
        query = select(parent_profiles).where(parent_profiles.c.user_id == user_id)
        result = await db.execute(query)
        return _to_dict(result.mappings().first())

    async def get_oauth_account(
        self, db: AsyncSession, provider: str, provider_id: str
    ) -> dict | None:
        """Find the link for a provider subject."""
        query = select(oauth_accounts).where(
            oauth_accounts.c.provider == provider,
            oauth_accounts.c.provider_id == provider_id,
        )
        result = await db.execute(query)
        return _to_dict(result.mappings().first())

    async def create_oauth_account(
        self, db: AsyncSession, provider: str, provider_id: str, user_id: UUID
    ) -> dict:
        """Link a provider subject to a user."""
        values = {
            "id": uuid4(),
            "provider": provider,
            "provider_id": provider_id,
            "user_id": user_id,
            "created_at": utcnow(),
        }
        await db.execute(insert(oauth_accounts).values(**values))
        return values
