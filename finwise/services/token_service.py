"""Refresh token lifecycle: issuance, rotation, revocation and cleanup."""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID, uuid4

import structlog
from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.config import Settings
from finwise.core.exceptions import (
    ExpiredRefreshTokenError,
    ExpiredTokenError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    RevokedRefreshTokenError,
    UserDeletedError,
)
from finwise.core.security import AccessTokenClaims, JwtService, RefreshTokenClaims
from finwise.models.base import as_utc, utcnow
from finwise.models.refresh_tokens import refresh_tokens
from finwise.models.users import users

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TokenPair:
    """Access token plus the refresh token that can renew it."""

    access_token: str
    refresh_token: str


class TokenService:
    """
    Issue and rotate session tokens.

    A stored refresh token is either active, revoked or expired. Revoked and
    expired are terminal: a token in either state can never be exchanged again.
    """

    def __init__(self, settings: Settings, jwt_service: JwtService):
        """Initialize with settings and the JWT codec."""
        self.jwt = jwt_service
        self.revoked_retention = timedelta(days=settings.refresh_token_revoked_retention_days)

    async def generate_token_pair(
        self, db: AsyncSession, user_id: UUID, email: str, role: str
    ) -> TokenPair:
        """
        Create access and refresh tokens and persist the refresh token digest.

        Args:
            db: Database session
            user_id: User identifier
            email: User email
            role: User role

        Returns:
            Token pair
        """
        token_id = uuid4()

        access_token = self.jwt.create_access_token(user_id, email, role)
        refresh_token = self.jwt.create_refresh_token(user_id, token_id)

        await db.execute(
            insert(refresh_tokens).values(
                id=token_id,
                user_id=user_id,
                token_hash=self.jwt.hash_token(refresh_token),
                expires_at=self.jwt.refresh_token_expiration(),
                created_at=utcnow(),
            )
        )
        await db.commit()

        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def verify_access_token(self, token: str) -> AccessTokenClaims:
        """Validate an access token's signature, issuer, audience and expiry."""
        return self.jwt.decode_access_token(token)

    def verify_refresh_token(self, token: str) -> RefreshTokenClaims:
        """Validate a refresh token's signature, issuer, audience and expiry."""
        return self.jwt.decode_refresh_token(token)

    async def refresh_tokens(self, db: AsyncSession, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair, revoking the old one.

        Args:
            db: Database session
            refresh_token: Refresh token presented by the client

        Returns:
            New token pair

        Raises:
            InvalidRefreshTokenError: Bad signature or unknown token
            ExpiredRefreshTokenError: Token is past its expiry
            RevokedRefreshTokenError: Token was already used or revoked
            UserDeletedError: Owning user is soft-deleted
        """
        try:
            self.verify_refresh_token(refresh_token)
        except ExpiredTokenError:
            raise ExpiredRefreshTokenError()
        except InvalidTokenError:
            raise InvalidRefreshTokenError()

        query = (
            select(
                refresh_tokens.c.id,
                refresh_tokens.c.expires_at,
                refresh_tokens.c.revoked_at,
                users.c.id.label("user_id"),
                users.c.email,
                users.c.role,
                users.c.deleted_at,
            )
            .select_from(refresh_tokens.outerjoin(users, users.c.id == refresh_tokens.c.user_id))
            .where(refresh_tokens.c.token_hash == self.jwt.hash_token(refresh_token))
        )
        result = await db.execute(query)
        stored = result.mappings().first()

        if stored is None:
            raise InvalidRefreshTokenError()

        if stored["revoked_at"] is not None:
            logger.warning("refresh_token_reuse_detected", token_id=str(stored["id"]))
            raise RevokedRefreshTokenError()

        if as_utc(stored["expires_at"]) <= utcnow():
            raise ExpiredRefreshTokenError()

        if stored["user_id"] is None or stored["deleted_at"] is not None:
            raise UserDeletedError()

        # Revoke only if still active: concurrent callers get exactly one winner
        if not await self._revoke_if_active(db, stored["id"]):
            await db.rollback()
            logger.warning("refresh_token_reuse_detected", token_id=str(stored["id"]))
            raise RevokedRefreshTokenError()

        logger.info("refresh_token_rotated", token_id=str(stored["id"]))

        return await self.generate_token_pair(
            db, stored["user_id"], stored["email"], stored["role"]
        )

    async def _revoke_if_active(self, db: AsyncSession, token_id: UUID) -> bool:
        result = await db.execute(
            update(refresh_tokens)
            .where(refresh_tokens.c.id == token_id, refresh_tokens.c.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        return result.rowcount == 1

    async def revoke_refresh_token(self, db: AsyncSession, refresh_token: str) -> None:
        """
        Revoke a refresh token (logout).

        Unknown and already revoked tokens are accepted silently.
        """
        await db.execute(
            update(refresh_tokens)
            .where(
                refresh_tokens.c.token_hash == self.jwt.hash_token(refresh_token),
                refresh_tokens.c.revoked_at.is_(None),
            )
            .values(revoked_at=utcnow())
        )
        await db.commit()

    async def revoke_all_user_tokens(self, db: AsyncSession, user_id: UUID) -> int:
        """
        Revoke every active refresh token of a user.

        Returns:
            Number of tokens revoked
        """
        result = await db.execute(
            update(refresh_tokens)
            .where(refresh_tokens.c.user_id == user_id, refresh_tokens.c.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        await db.commit()
        logger.info("refresh_tokens_revoked", user_id=str(user_id), count=result.rowcount)
        return result.rowcount

    async def cleanup_expired_tokens(self, db: AsyncSession) -> int:
        """
        Delete expired tokens and tokens revoked longer than the retention period.

        Returns:
            Number of rows deleted
        """
        now = utcnow()
        result = await db.execute(
            delete(refresh_tokens).where(
                or_(
                    refresh_tokens.c.expires_at < now,
                    refresh_tokens.c.revoked_at < now - self.revoked_retention,
                )
            )
        )
        await db.commit()
        logger.info("expired_refresh_tokens_cleaned", count=result.rowcount)
        return result.rowcount
