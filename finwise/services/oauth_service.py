"""OAuth identity verification and account linking for Google and Apple."""

from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from google.auth.transport import requests as grequests
from google.oauth2 import id_token as google_id_token
from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from finwise.config import Settings
from finwise.core.exceptions import (
    InvalidProviderTokenError,
    MissingProviderEmailError,
    ProviderNotConfiguredError,
    UserDeletedError,
)
from finwise.services.mailer_service import redact_email
from finwise.services.token_service import TokenPair, TokenService
from finwise.services.user_service import UserService

logger = structlog.get_logger(__name__)

GOOGLE_ISSUERS = {"accounts.google.com", "https://accounts.google.com"}
APPLE_ISSUER = "https://appleid.apple.com"

# Role given to identities first seen through a provider
OAUTH_DEFAULT_ROLE = "PARENT"


@dataclass(frozen=True)
class ProviderIdentity:
    """Claims taken from a verified provider ID token."""

    sub: str
    email: str | None
    name: str | None
    email_verified: bool


@dataclass(frozen=True)
class OAuthResolution:
    """Local user an identity resolved to."""

    user: dict
    is_new_user: bool


@dataclass(frozen=True)
class OAuthLoginResult:
    """Outcome of a complete OAuth login."""

    user: dict
    verification_status: str
    tokens: TokenPair
    is_new_user: bool


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


class OAuthService:
    """Verify provider ID tokens and resolve them to local users."""

    def __init__(
        self,
        settings: Settings,
        user_service: UserService,
        token_service: TokenService,
    ):
        """Initialize with provider client ids and collaborating services."""
        self.google_client_id = settings.google_client_id
        self.apple_client_id = settings.apple_client_id
        self.apple_jwks_url = settings.apple_jwks_url
        self.users = user_service
        self.tokens = token_service

    async def verify_provider_token(self, provider: str, id_token: str) -> ProviderIdentity:
        """
        Verify an ID token with its provider.

        Args:
            provider: "GOOGLE" or "APPLE" (case-insensitive)
            id_token: Token issued to the client by the provider

        Returns:
            Verified identity claims

        Raises:
            ProviderNotConfiguredError: No client id configured for the provider
            InvalidProviderTokenError: Verification failed
        """
        provider = provider.upper()
        if provider == "GOOGLE":
            return await self._verify_google(id_token)
        if provider == "APPLE":
            return await self._verify_apple(id_token)
        raise InvalidProviderTokenError(f"Unsupported provider: {provider.lower()}")

    async def _verify_google(self, token: str) -> ProviderIdentity:
        if not self.google_client_id:
            raise ProviderNotConfiguredError("google")
        try:
            claims = await run_in_threadpool(
                google_id_token.verify_oauth2_token,
                token,
                grequests.Request(),
                self.google_client_id,
            )
        except Exception as e:
            logger.warning("google_token_invalid", error=str(e))
            raise InvalidProviderTokenError("Invalid Google token")

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise InvalidProviderTokenError("Invalid Google token")

        return ProviderIdentity(
            sub=str(claims["sub"]),
            email=claims.get("email") or None,
            name=claims.get("name"),
            email_verified=_as_bool(claims.get("email_verified", False)),
        )

    async def _fetch_apple_keys(self) -> list[dict[str, Any]]:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.get(self.apple_jwks_url)
            response.raise_for_status()
            return response.json()["keys"]

    async def _verify_apple(self, token: str) -> ProviderIdentity:
        if not self.apple_client_id:
            raise ProviderNotConfiguredError("apple")
        try:
            kid = jwt.get_unverified_header(token).get("kid")
            keys = await self._fetch_apple_keys()
            key = next((k for k in keys if k.get("kid") == kid), None)
            if key is None:
                raise InvalidProviderTokenError("Invalid Apple token")
            claims = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                audience=self.apple_client_id,
                issuer=APPLE_ISSUER,
                options={"verify_at_hash": False},
            )
        except InvalidProviderTokenError:
            raise
        except (JWTError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("apple_token_invalid", error=str(e))
            raise InvalidProviderTokenError("Invalid Apple token")

        return ProviderIdentity(
            sub=str(claims["sub"]),
            email=claims.get("email") or None,
            name=None,
            email_verified=_as_bool(claims.get("email_verified", False)),
        )

    async def resolve_account(
        self, db: AsyncSession, provider: str, identity: ProviderIdentity
    ) -> OAuthResolution:
        """
        Find or create the local user for a verified provider identity.

        Resolution order: existing provider link, then an existing user with
        the same email (the link is added), then a brand-new PARENT user with
        a pending verification request.

        Raises:
            MissingProviderEmailError: Provider returned no email
            UserDeletedError: The resolved user is soft-deleted
        """
        if not identity.email:
            raise MissingProviderEmailError()

        provider = provider.upper()
        try:
            resolution = await self._resolve(db, provider, identity)
        except IntegrityError:
            # A concurrent login created the link or user first
            await db.rollback()
            logger.info("oauth_resolution_retried", provider=provider)
            resolution = await self._resolve(db, provider, identity)

        if resolution.user.get("deleted_at") is not None:
            raise UserDeletedError()

        return resolution

    async def _resolve(
        self, db: AsyncSession, provider: str, identity: ProviderIdentity
    ) -> OAuthResolution:
        email = identity.email.lower()

        link = await self.users.get_oauth_account(db, provider, identity.sub)
        if link is not None:
            user = await self.users.get_user_by_id(db, link["user_id"], include_deleted=True)
            if user is not None:
                return OAuthResolution(user=user, is_new_user=False)

        user = await self.users.get_user_by_email(db, email, include_deleted=True)
        if user is not None:
            if user["deleted_at"] is not None:
                raise UserDeletedError()
            await self.users.create_oauth_account(db, provider, identity.sub, user["id"])
            await db.commit()
            logger.info(
                "oauth_account_linked",
                provider=provider,
                user_id=str(user["id"]),
            )
            return OAuthResolution(user=user, is_new_user=False)

        try:
            user = await self.users.create_user(
                db,
                email=email,
                name=identity.name or email.split("@")[0],
                role=OAUTH_DEFAULT_ROLE,
            )
            await self.users.create_oauth_account(db, provider, identity.sub, user["id"])
            await self.users.create_verification_request(db, user["id"], OAUTH_DEFAULT_ROLE)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "oauth_user_created",
            provider=provider,
            user_id=str(user["id"]),
            email=redact_email(email),
        )
        return OAuthResolution(user=user, is_new_user=True)

    async def authenticate(
        self, db: AsyncSession, provider: str, id_token: str
    ) -> OAuthLoginResult:
        """Verify a provider token, resolve the user and open a session."""
        identity = await self.verify_provider_token(provider, id_token)
        resolution = await self.resolve_account(db, provider, identity)
        user = resolution.user

        tokens = await self.tokens.generate_token_pair(db, user["id"], user["email"], user["role"])
        verification_status = await self.users.get_verification_status(db, user["id"])

        return OAuthLoginResult(
            user=user,
            verification_status=verification_status,
            tokens=tokens,
            is_new_user=resolution.is_new_user,
        )
