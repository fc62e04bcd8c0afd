"""Security utilities for password hashing and JWT handling."""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from finwise.config import Settings
from finwise.core.exceptions import ExpiredTokenError, InvalidTokenError

# Argon2id policy: 64 MiB memory, 3 passes, 4 lanes
ARGON2_MEMORY_COST = 65536
ARGON2_TIME_COST = 3
ARGON2_PARALLELISM = 4

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
PASSWORD_RESET_TOKEN_TYPE = "password-reset"


class PasswordService:
    """Argon2id password hashing with transparent rehash support."""

    def __init__(self) -> None:
        """Initialize the hashing context with the current cost policy."""
        self._context = CryptContext(
            schemes=["argon2"],
            deprecated="auto",
            argon2__type="id",
            argon2__memory_cost=ARGON2_MEMORY_COST,
            argon2__rounds=ARGON2_TIME_COST,
            argon2__min_rounds=ARGON2_TIME_COST,
            argon2__max_rounds=ARGON2_TIME_COST,
            argon2__parallelism=ARGON2_PARALLELISM,
        )
        self._dummy_hash: str | None = None

    def hash(self, password: str) -> str:
        """Hash a password."""
        return self._context.hash(password)

    def verify(self, hashed_password: str | None, password: str) -> bool:
        """
        Verify a password against a hash.

        Malformed or foreign hash strings are treated as a mismatch.
        """
        if not hashed_password:
            return False
        try:
            return self._context.verify(password, hashed_password)
        except (ValueError, TypeError):
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """Check whether a stored hash was produced under a different cost policy."""
        try:
            return self._context.needs_update(hashed_password)
        except (ValueError, TypeError):
            return True

    def dummy_verify(self, password: str) -> None:
        """Spend one verification so unknown accounts cost the same as known ones."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("finwise-dummy-password")
        self.verify(self._dummy_hash, password)


@dataclass(frozen=True)
class AccessTokenClaims:
    """Validated access token payload."""

    user_id: UUID
    email: str
    role: str
    expires_at: datetime


@dataclass(frozen=True)
class RefreshTokenClaims:
    """Validated refresh token payload."""

    user_id: UUID
    token_id: UUID
    expires_at: datetime


@dataclass(frozen=True)
class PasswordResetClaims:
    """Validated password reset token payload."""

    user_id: UUID
    email: str


class JwtService:
    """Encode and validate the service's JWTs."""

    def __init__(self, settings: Settings):
        """Initialize with signing secrets and lifetimes from settings."""
        self.access_secret = settings.jwt_access_secret
        self.refresh_secret = settings.jwt_refresh_secret
        self.algorithm = settings.jwt_algorithm
        self.issuer = settings.jwt_issuer
        self.audience = settings.jwt_audience
        self.access_ttl = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)
        self.password_reset_ttl = timedelta(minutes=settings.password_reset_token_expire_minutes)
        self._hash_key = settings.refresh_token_hash_key.encode()

    def _encode(self, data: dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = datetime.now(UTC)
        to_encode = data.copy()
        to_encode.update(
            {
                "iss": self.issuer,
                "aud": self.audience,
                "iat": now,
                "exp": now + ttl,
            }
        )
        return jwt.encode(to_encode, secret, algorithm=self.algorithm)

    def _decode(self, token: str, secret: str, token_type: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTError:
            raise InvalidTokenError()

        # Verify token type
        if payload.get("type") != token_type:
            raise InvalidTokenError("Invalid token type")

        return payload

    @staticmethod
    def _uuid_claim(payload: dict[str, Any], name: str) -> UUID:
        value = payload.get(name)
        if not isinstance(value, str):
            raise InvalidTokenError()
        try:
            return UUID(value)
        except ValueError:
            raise InvalidTokenError()

    @staticmethod
    def _expiry(payload: dict[str, Any]) -> datetime:
        return datetime.fromtimestamp(payload["exp"], tz=UTC)

    def create_access_token(
        self,
        user_id: UUID,
        email: str,
        role: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Create a short-lived access token.

        Args:
            user_id: User identifier
            email: User email
            role: User role
            expires_delta: Optional lifetime override

        Returns:
            Encoded JWT access token
        """
        return self._encode(
            {"sub": str(user_id), "email": email, "role": role, "type": ACCESS_TOKEN_TYPE},
            self.access_secret,
            expires_delta or self.access_ttl,
        )

    def create_refresh_token(
        self,
        user_id: UUID,
        token_id: UUID,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Create a long-lived refresh token.

        Args:
            user_id: User identifier
            token_id: Identifier of the stored refresh token record
            expires_delta: Optional lifetime override

        Returns:
            Encoded JWT refresh token
        """
        return self._encode(
            {"sub": str(user_id), "jti": str(token_id), "type": REFRESH_TOKEN_TYPE},
            self.refresh_secret,
            expires_delta or self.refresh_ttl,
        )

    def create_password_reset_token(self, user_id: UUID, email: str) -> str:
        """Create a one hour password reset token."""
        return self._encode(
            {"sub": str(user_id), "email": email, "type": PASSWORD_RESET_TOKEN_TYPE},
            self.access_secret,
            self.password_reset_ttl,
        )

    def decode_access_token(self, token: str) -> AccessTokenClaims:
        """
        Decode and validate an access token.

        Raises:
            ExpiredTokenError: If the token has expired
            InvalidTokenError: If the token is invalid in any other way
        """
        payload = self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE)
        email = payload.get("email")
        role = payload.get("role")
        if not isinstance(email, str) or not isinstance(role, str):
            raise InvalidTokenError()
        return AccessTokenClaims(
            user_id=self._uuid_claim(payload, "sub"),
            email=email,
            role=role,
            expires_at=self._expiry(payload),
        )

    def decode_refresh_token(self, token: str) -> RefreshTokenClaims:
        """
        Decode and validate a refresh token.

        Raises:
            ExpiredTokenError: If the token has expired
            InvalidTokenError: If the token is invalid in any other way
        """
        payload = self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE)
        return RefreshTokenClaims(
            user_id=self._uuid_claim(payload, "sub"),
            token_id=self._uuid_claim(payload, "jti"),
            expires_at=self._expiry(payload),
        )

    def decode_password_reset_token(self, token: str) -> PasswordResetClaims:
        """Decode and validate a password reset token."""
        payload = self._decode(token, self.access_secret, PASSWORD_RESET_TOKEN_TYPE)
        email = payload.get("email")
        if not isinstance(email, str):
            raise InvalidTokenError()
        return PasswordResetClaims(user_id=self._uuid_claim(payload, "sub"), email=email)

    def hash_token(self, token: str) -> str:
        """Keyed one-way digest of a token, used as its storage key."""
        return hmac.new(self._hash_key, token.encode(), hashlib.sha256).hexdigest()

    def refresh_token_expiration(self) -> datetime:
        """Expiry timestamp for a refresh token issued now."""
        return datetime.now(UTC) + self.refresh_ttl
