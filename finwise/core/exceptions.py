"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str | None = None,
        details: Any = None,
    ):
        """Initialize exception with message, status code and error code."""
        self.message = message
        self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)


class BadRequestException(AppException):
    """Bad request exception."""

    code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request", details: Any = None):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400, details=details)


class ValidationException(BadRequestException):
    """Input failed shape or constraint validation."""

    def __init__(self, message: str = "Validation failed", details: Any = None):
        """Initialize with 400 status code and the offending fields."""
        super().__init__(message, details=details)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class NotFoundException(AppException):
    """Resource not found exception."""

    code = "NOT_FOUND"

    def __init__(self, message: str = "Not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ConflictException(AppException):
    """Conflict exception."""

    code = "CONFLICT"

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class UnsupportedMediaException(AppException):
    """Required upload missing or of an unsupported type."""

    code = "UNSUPPORTED_MEDIA"

    def __init__(self, message: str = "Unsupported media type"):
        """Initialize with 415 status code."""
        super().__init__(message, status_code=415)


class RateLimitException(AppException):
    """Rate limit exceeded exception."""

    code = "TOO_MANY_REQUESTS"

    def __init__(
        self, message: str = "Too many attempts, please try again later", details: Any = None
    ):
        """Initialize with 429 status code."""
        super().__init__(message, status_code=429, details=details)


class InternalException(AppException):
    """Unexpected or store failure."""

    def __init__(self, message: str = "Internal server error"):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)


# Token errors. All surface as 401 so callers cannot tell which check failed.


class InvalidTokenError(UnauthorizedException):
    """Token signature, issuer, audience or claims are wrong."""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class ExpiredTokenError(UnauthorizedException):
    """Token is past its expiry."""

    def __init__(self, message: str = "Token expired"):
        super().__init__(message)


class InvalidRefreshTokenError(InvalidTokenError):
    """Refresh token is unknown or malformed."""

    def __init__(self, message: str = "Invalid refresh token"):
        super().__init__(message)


class RevokedRefreshTokenError(UnauthorizedException):
    """Refresh token was already used, logged out or revoked."""

    def __init__(self, message: str = "Refresh token has been revoked"):
        super().__init__(message)


class ExpiredRefreshTokenError(ExpiredTokenError):
    """Refresh token is past its expiry."""

    def __init__(self, message: str = "Refresh token has expired"):
        super().__init__(message)


class UserDeletedError(UnauthorizedException):
    """Owning user has been soft-deleted."""

    def __init__(self, message: str = "User account has been deleted"):
        super().__init__(message)


# OAuth errors


class InvalidProviderTokenError(UnauthorizedException):
    """Identity provider rejected the ID token."""

    def __init__(self, message: str = "Invalid provider token"):
        super().__init__(message)


class MissingProviderEmailError(BadRequestException):
    """Identity provider did not return an email address."""

    def __init__(self, message: str = "Email not provided by OAuth provider"):
        super().__init__(message)


class ProviderNotConfiguredError(AppException):
    """No client id is configured for the requested provider."""

    def __init__(self, provider: str):
        super().__init__(
            f"{provider.capitalize()} OAuth not configured",
            status_code=500,
            code="PROVIDER_NOT_CONFIGURED",
        )
