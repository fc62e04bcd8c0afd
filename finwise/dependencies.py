"""FastAPI dependencies."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from finwise.core.exceptions import (
    ExpiredTokenError,
    ForbiddenException,
    InvalidTokenError,
    RateLimitException,
    UnauthorizedException,
)
from finwise.database import get_db
from finwise.services.auth_service import AuthService
from finwise.services.mailer_service import MailerService
from finwise.services.oauth_service import OAuthService
from finwise.services.signup_service import SignupService
from finwise.services.token_service import TokenService
from finwise.services.user_service import UserService

logger = structlog.get_logger(__name__)

# Security
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity attached to an authenticated request."""

    id: UUID
    email: str
    role: str


# Service accessors. Instances are built once at startup and kept on app.state.


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_oauth_service(request: Request) -> OAuthService:
    return request.app.state.oauth_service


def get_signup_service(request: Request) -> SignupService:
    return request.app.state.signup_service


def get_mailer(request: Request) -> MailerService:
    return request.app.state.mailer


async def _resolve_user(
    credentials: HTTPAuthorizationCredentials | None,
    db: AsyncSession,
    tokens: TokenService,
    users: UserService,
) -> AuthenticatedUser:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise UnauthorizedException("Missing or invalid authorization header")

    try:
        claims = tokens.verify_access_token(credentials.credentials)
    except ExpiredTokenError:
        raise UnauthorizedException("Token expired")
    except InvalidTokenError:
        raise UnauthorizedException("Invalid token")

    user = await users.get_user_by_id(db, claims.user_id)
    if user is None:
        raise UnauthorizedException("User not found or deleted")

    return AuthenticatedUser(id=user["id"], email=user["email"], role=user["role"])


async def require_auth(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
    users: Annotated[UserService, Depends(get_user_service)],
) -> AuthenticatedUser:
    """
    Authenticate the request from its bearer access token.

    The user is re-read from the database so deleted accounts are rejected
    even while their access tokens are still valid.

    Raises:
        UnauthorizedException: Header missing, token invalid or expired, user gone
    """
    user = await _resolve_user(credentials, db, tokens, users)
    request.state.user = user
    return user


def require_role(*roles: str) -> Callable:
    """
    Build a dependency that admits only the given roles.

    Must run after ``require_auth``.
    """
    allowed = set(roles)

    async def check_role(request: Request) -> AuthenticatedUser:
        user: AuthenticatedUser | None = getattr(request.state, "user", None)
        if user is None:
            raise UnauthorizedException("Authentication required")
        if user.role not in allowed:
            raise ForbiddenException("Insufficient permissions")
        return user

    return check_role


async def auth_rate_limit(request: Request) -> None:
    """
    Throttle credential attempts per client address.

    Raises:
        RateLimitException: Too many attempts in the current window
    """
    limiter = request.app.state.auth_rate_limiter
    client = request.client.host if request.client else "unknown"
    if not limiter.hit(client):
        logger.warning("auth_rate_limited", client=client, path=request.url.path)
        raise RateLimitException(details={"retryAfter": limiter.retry_after(client)})


async def optional_auth(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
    users: Annotated[UserService, Depends(get_user_service)],
) -> AuthenticatedUser | None:
    """Authenticate when possible; any failure leaves the request anonymous."""
    try:
        user = await _resolve_user(credentials, db, tokens, users)
    except UnauthorizedException:
        return None
    except Exception as e:
        logger.warning("optional_auth_failed", error=str(e))
        return None
    request.state.user = user
    return user


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[AuthenticatedUser, Depends(require_auth)]
OptionalUser = Annotated[AuthenticatedUser | None, Depends(optional_auth)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
OAuthServiceDep = Annotated[OAuthService, Depends(get_oauth_service)]
SignupServiceDep = Annotated[SignupService, Depends(get_signup_service)]
TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
MailerDep = Annotated[MailerService, Depends(get_mailer)]
