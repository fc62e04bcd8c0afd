"""Password based authentication flows."""

from dataclasses import dataclass
from urllib.parse import urlencode
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from finwise.config import Settings
from finwise.core.exceptions import (
    BadRequestException,
    ExpiredTokenError,
    InvalidTokenError,
    NotFoundException,
    UnauthorizedException,
)
from finwise.core.security import JwtService, PasswordService
from finwise.services.mailer_service import redact_email
from finwise.services.token_service import TokenPair, TokenService
from finwise.services.user_service import UserService

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass(frozen=True)
class LoginResult:
    """Authenticated user with a fresh session."""

    user: dict
    verification_status: str
    tokens: TokenPair


@dataclass(frozen=True)
class ProfileResult:
    """Everything ``/auth/me`` returns about the caller."""

    user: dict
    verification_status: str
    parent_profile: dict | None


@dataclass(frozen=True)
class PasswordResetTicket:
    """Reset link addressed to a user."""

    email: str
    name: str
    link: str


class AuthService:
    """Login, profile and password management."""

    def __init__(
        self,
        settings: Settings,
        password_service: PasswordService,
        jwt_service: JwtService,
        user_service: UserService,
        token_service: TokenService,
    ):
        """Initialize with collaborating services."""
        self.password_reset_url = settings.password_reset_url
        self.passwords = password_service
        self.jwt = jwt_service
        self.users = user_service
        self.tokens = token_service

    async def login(self, db: AsyncSession, email: str, password: str) -> LoginResult:
        """
        Authenticate with email and password.

        Unknown emails and OAuth-only accounts still pay for one hash
        verification so response time does not reveal which emails exist.

        Raises:
            UnauthorizedException: Credentials do not match
        """
        user = await self.users.get_user_by_email(db, email.lower())

        if user is None or not user["password_hash"]:
            await run_in_threadpool(self.passwords.dummy_verify, password)
            raise UnauthorizedException(INVALID_CREDENTIALS)

        valid = await run_in_threadpool(self.passwords.verify, user["password_hash"], password)
        if not valid:
            logger.info("login_failed", user_id=str(user["id"]))
            raise UnauthorizedException(INVALID_CREDENTIALS)

        if self.passwords.needs_rehash(user["password_hash"]):
            new_hash = await run_in_threadpool(self.passwords.hash, password)
            await self.users.update_password_hash(db, user["id"], new_hash)
            await db.commit()
            logger.info("password_rehashed", user_id=str(user["id"]))

        tokens = await self.tokens.generate_token_pair(db, user["id"], user["email"], user["role"])
        verification_status = await self.users.get_verification_status(db, user["id"])

        logger.info("user_logged_in", user_id=str(user["id"]))

        return LoginResult(user=user, verification_status=verification_status, tokens=tokens)

    async def get_profile(self, db: AsyncSession, user_id: UUID) -> ProfileResult:
        """Current user with verification status and parent profile."""
        user = await self.users.get_user_by_id(db, user_id)
        if user is None:
            raise NotFoundException("User not found")

        verification_status = await self.users.get_verification_status(db, user_id)
        parent_profile = None
        if user["role"] == "PARENT":
            parent_profile = await self.users.get_parent_profile(db, user_id)

        return ProfileResult(
            user=user,
            verification_status=verification_status,
            parent_profile=parent_profile,
        )

    async def forgot_password(self, db: AsyncSession, email: str) -> PasswordResetTicket | None:
        """
        Mint a password reset link.

        Returns None when there is nothing to reset: unknown or deleted
        users and OAuth-only accounts. Callers must not reveal which case
        occurred.
        """
        user = await self.users.get_user_by_email(db, email.lower())
        if user is None or not user["password_hash"]:
            logger.info("password_reset_skipped", email=redact_email(email))
            return None

        token = self.jwt.create_password_reset_token(user["id"], user["email"])
        link = f"{self.password_reset_url}?{urlencode({'token': token})}"

        logger.info("password_reset_requested", user_id=str(user["id"]))
        return PasswordResetTicket(email=user["email"], name=user["name"], link=link)

    async def reset_password(
        self, db: AsyncSession, token: str, new_password: str
    ) -> tuple[dict, TokenPair]:
        """
        Set a new password from a reset token and start a new session.

        All existing refresh tokens are revoked.

        Raises:
            BadRequestException: Token invalid or expired, or OAuth-only account
            NotFoundException: User gone or email changed since the token was issued
        """
        try:
            claims = self.jwt.decode_password_reset_token(token)
        except (InvalidTokenError, ExpiredTokenError):
            raise BadRequestException("Invalid or expired reset token")

        user = await self.users.get_user_by_id(db, claims.user_id)
        if user is None or user["email"] != claims.email:
            raise NotFoundException("User not found")

        if not user["password_hash"]:
            raise BadRequestException("This account uses social login and has no password")

        new_hash = await run_in_threadpool(self.passwords.hash, new_password)
        await self.users.update_password_hash(db, user["id"], new_hash)
        await db.commit()

        await self.tokens.revoke_all_user_tokens(db, user["id"])
        tokens = await self.tokens.generate_token_pair(db, user["id"], user["email"], user["role"])

        logger.info("password_reset_completed", user_id=str(user["id"]))
        return user, tokens

    async def change_password(
        self, db: AsyncSession, user_id: UUID, current_password: str, new_password: str
    ) -> None:
        """
        Change the password of an authenticated user and end all sessions.

        Raises:
            NotFoundException: User no longer exists
            BadRequestException: OAuth-only account
            UnauthorizedException: Current password is wrong
        """
        user = await self.users.get_user_by_id(db, user_id)
        if user is None:
            raise NotFoundException("User not found")

        if not user["password_hash"]:
            raise BadRequestException("This account uses social login and has no password")

        valid = await run_in_threadpool(
            self.passwords.verify, user["password_hash"], current_password
        )
        if not valid:
            raise UnauthorizedException("Current password is incorrect")

        new_hash = await run_in_threadpool(self.passwords.hash, new_password)
        await self.users.update_password_hash(db, user_id, new_hash)
        await db.commit()

        await self.tokens.revoke_all_user_tokens(db, user_id)
        logger.info("password_changed", user_id=str(user_id))

    async def logout(self, db: AsyncSession, refresh_token: str | None) -> None:
        """Revoke the presented refresh token. Never fails."""
        if not refresh_token:
            return
        try:
            await self.tokens.revoke_refresh_token(db, refresh_token)
        except Exception as e:
            await db.rollback()
            logger.warning("logout_revocation_failed", error=str(e))
