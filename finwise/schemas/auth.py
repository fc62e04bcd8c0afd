"""Authentication schemas."""

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import Field, StringConstraints, TypeAdapter

from finwise.schemas.common import CamelModel, NormalizedEmail

Password = Annotated[str, StringConstraints(min_length=8, max_length=100)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
CountryCode = Annotated[
    str,
    StringConstraints(strip_whitespace=True, to_upper=True, pattern=r"^[A-Za-z]{2}$"),
]

Role = Literal["PARENT", "CHILD"]
VerificationStatus = Literal["PENDING", "APPROVED", "REJECTED"]


class ParentSignupRequest(CamelModel):
    """Parent signup fields (an ID image is attached separately)."""

    role: Literal["PARENT"]
    name: Name
    email: NormalizedEmail
    password: Password
    country: CountryCode
    number_of_children: int = Field(..., ge=0, le=20)
    monthly_income_base: float = Field(..., gt=0)
    monthly_rent_base: float | None = Field(None, ge=0)
    monthly_loans_base: float | None = Field(None, ge=0)
    other_notes: str | None = Field(None, max_length=1000)


class ChildSignupRequest(CamelModel):
    """Child signup fields."""

    role: Literal["CHILD"]
    name: Name
    email: NormalizedEmail
    password: Password


SignupRequest = Annotated[
    ParentSignupRequest | ChildSignupRequest,
    Field(discriminator="role"),
]

signup_request_adapter: TypeAdapter[SignupRequest] = TypeAdapter(SignupRequest)


class LoginRequest(CamelModel):
    """Email/password login request."""

    email: NormalizedEmail
    password: str = Field(..., min_length=1)


class OAuthRequest(CamelModel):
    """Provider ID token login request."""

    provider: Literal["google", "apple"]
    id_token: str = Field(..., min_length=1, description="ID token issued by the provider")


class TokenRefresh(CamelModel):
    """Token refresh request schema."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    """Logout request; the token is optional."""

    refresh_token: str | None = None


class ForgotPasswordRequest(CamelModel):
    """Password reset email request."""

    email: NormalizedEmail


class ResetPasswordRequest(CamelModel):
    """Password reset with an emailed token."""

    token: str = Field(..., min_length=1)
    password: Password


class ChangePasswordRequest(CamelModel):
    """Password change for an authenticated user."""

    current_password: str = Field(..., min_length=1)
    new_password: Password


class UserResponse(CamelModel):
    """Public user fields."""

    id: UUID
    email: str
    name: str
    role: Role


class UserProfileResponse(UserResponse):
    """User fields returned by the profile endpoint."""

    avatar_url: str | None = None
    created_at: datetime


class ParentProfileResponse(CamelModel):
    """Household baseline captured at parent signup."""

    country: str
    number_of_children: int
    monthly_income_base: float
    monthly_rent_base: float | None = None
    monthly_loans_base: float | None = None


class TokenPairResponse(CamelModel):
    """Access and refresh token pair."""

    access_token: str
    refresh_token: str


class SessionResponse(TokenPairResponse):
    """Signup and login payload."""

    user: UserResponse
    verification_status: VerificationStatus


class OAuthSessionResponse(SessionResponse):
    """OAuth login payload."""

    is_new_user: bool


class MeResponse(CamelModel):
    """Current user profile payload."""

    user: UserProfileResponse
    verification_status: VerificationStatus
    parent_profile: ParentProfileResponse | None = None


class ResetPasswordResponse(TokenPairResponse):
    """Password reset payload; the user is logged in again."""

    user: UserResponse
    message: str
