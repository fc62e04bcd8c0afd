"""Database models."""

from finwise.models.base import metadata
from finwise.models.oauth_accounts import oauth_accounts
from finwise.models.parent_profiles import parent_profiles
from finwise.models.refresh_tokens import refresh_tokens
from finwise.models.users import users
from finwise.models.verification_requests import verification_requests

__all__ = [
    "metadata",
    "oauth_accounts",
    "parent_profiles",
    "refresh_tokens",
    "users",
    "verification_requests",
]
