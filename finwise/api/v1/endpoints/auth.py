"""Authentication endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Request, UploadFile, status
from pydantic import ValidationError

from finwise.core.exceptions import ValidationException
from finwise.dependencies import (
    AuthServiceDep,
    CurrentUser,
    DatabaseSession,
    MailerDep,
    OAuthServiceDep,
    SignupServiceDep,
    TokenServiceDep,
    auth_rate_limit,
)
from finwise.middleware.error_handler import validation_details
from finwise.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    OAuthRequest,
    OAuthSessionResponse,
    ParentProfileResponse,
    ResetPasswordRequest,
    ResetPasswordResponse,
    SessionResponse,
    TokenPairResponse,
    TokenRefresh,
    UserProfileResponse,
    UserResponse,
    signup_request_adapter,
)
from finwise.schemas.common import ApiResponse, ErrorResponse, MessageResponse
from finwise.services.mailer_service import deliver_safely
from finwise.services.storage_service import UploadedFile
from finwise.services.token_service import TokenPair

router = APIRouter(
    responses={
        400: {"model": ErrorResponse, "description": "Validation failed"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        500: {"model": ErrorResponse, "description": "Unexpected error"},
    }
)

logger = structlog.get_logger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a password reset link has been sent."


def _session(user: dict, verification_status: str, tokens: TokenPair) -> SessionResponse:
    return SessionResponse(
        user=UserResponse.model_validate(user),
        verification_status=verification_status,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


async def _read_upload(upload: UploadFile | None, limit: int) -> UploadedFile | None:
    """Read an upload into memory, stopping one byte past ``limit``."""
    if upload is None or not upload.filename:
        return None
    content = await upload.read(limit + 1)
    return UploadedFile(
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        content=content,
    )


@router.post(
    "/signup",
    response_model=ApiResponse[SessionResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a parent or child account",
    dependencies=[Depends(auth_rate_limit)],
)
async def signup(
    db: DatabaseSession,
    signup_service: SignupServiceDep,
    background_tasks: BackgroundTasks,
    role: Annotated[str | None, Form()] = None,
    name: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    country: Annotated[str | None, Form()] = None,
    number_of_children: Annotated[str | None, Form(alias="numberOfChildren")] = None,
    monthly_income_base: Annotated[str | None, Form(alias="monthlyIncomeBase")] = None,
    monthly_rent_base: Annotated[str | None, Form(alias="monthlyRentBase")] = None,
    monthly_loans_base: Annotated[str | None, Form(alias="monthlyLoansBase")] = None,
    other_notes: Annotated[str | None, Form(alias="otherNotes")] = None,
    id_image: Annotated[UploadFile | None, File(alias="idImage")] = None,
) -> ApiResponse[SessionResponse]:
    """
    Register a user from a multipart form.

    Parents must attach an identity document image as ``idImage``; the
    account starts with a PENDING verification either way.

    Raises:
        ValidationException: Field validation failed
        ConflictException: Email already registered
        UnsupportedMediaException: ID image missing or not an allowed image
    """
    fields = {
        "role": role,
        "name": name,
        "email": email,
        "password": password,
        "country": country,
        "numberOfChildren": number_of_children,
        "monthlyIncomeBase": monthly_income_base,
        "monthlyRentBase": monthly_rent_base,
        "monthlyLoansBase": monthly_loans_base,
        "otherNotes": other_notes,
    }
    # Blank form fields count as absent
    form = {key: value for key, value in fields.items() if value not in (None, "")}

    try:
        data = signup_request_adapter.validate_python(form)
    except ValidationError as e:
        raise ValidationException(details=validation_details(e.errors()))

    image = await _read_upload(id_image, signup_service.max_upload_bytes)
    result = await signup_service.signup(db, data, image, background_tasks)

    return ApiResponse(data=_session(result.user, result.verification_status, result.tokens))


@router.post(
    "/login",
    response_model=ApiResponse[SessionResponse],
    status_code=status.HTTP_200_OK,
    summary="Email and password login",
    dependencies=[Depends(auth_rate_limit)],
)
async def login(
    request: LoginRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> ApiResponse[SessionResponse]:
    """
    Authenticate with email and password and start a session.

    Raises:
        UnauthorizedException: Invalid email or password
    """
    result = await auth_service.login(db, request.email, request.password)
    return ApiResponse(data=_session(result.user, result.verification_status, result.tokens))


@router.post(
    "/oauth",
    response_model=ApiResponse[OAuthSessionResponse],
    status_code=status.HTTP_200_OK,
    summary="Google or Apple sign-in",
    dependencies=[Depends(auth_rate_limit)],
)
async def oauth_login(
    request: OAuthRequest,
    db: DatabaseSession,
    oauth_service: OAuthServiceDep,
    mailer: MailerDep,
    background_tasks: BackgroundTasks,
) -> ApiResponse[OAuthSessionResponse]:
    """
    Exchange a provider ID token for a session.

    The identity is linked to an existing account with the same email, or a
    new PARENT account is created (``isNewUser`` is then true) and welcomed
    by email.
    """
    result = await oauth_service.authenticate(db, request.provider, request.id_token)
    if result.is_new_user:
        background_tasks.add_task(
            deliver_safely,
            mailer.send_parent_welcome_email,
            result.user["email"],
            result.user["name"],
        )
    return ApiResponse(
        data=OAuthSessionResponse(
            user=UserResponse.model_validate(result.user),
            verification_status=result.verification_status,
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            is_new_user=result.is_new_user,
        )
    )


@router.post(
    "/refresh",
    response_model=ApiResponse[TokenPairResponse],
    status_code=status.HTTP_200_OK,
    summary="Rotate a refresh token",
)
async def refresh_token(
    request: TokenRefresh,
    db: DatabaseSession,
    token_service: TokenServiceDep,
) -> ApiResponse[TokenPairResponse]:
    """
    Exchange a refresh token for a new pair.

    The presented token is revoked; presenting it again fails with 401.
    """
    tokens = await token_service.refresh_tokens(db, request.refresh_token)
    return ApiResponse(
        data=TokenPairResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )
    )


async def _logout_token(http_request: Request) -> str | None:
    body = await http_request.body()
    if not body:
        return None
    try:
        request = LogoutRequest.model_validate_json(body)
    except ValidationError:
        return None
    return request.refresh_token or None


@router.post(
    "/logout",
    response_model=ApiResponse[MessageResponse],
    status_code=status.HTTP_200_OK,
    summary="Revoke a refresh token",
    openapi_extra={
        "requestBody": {
            "required": False,
            "content": {"application/json": {"schema": LogoutRequest.model_json_schema()}},
        }
    },
)
async def logout(
    http_request: Request,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> ApiResponse[MessageResponse]:
    """
    Revoke the given refresh token. Always succeeds.

    The body is read leniently: a missing, malformed or non-string token is
    treated as no token at all.
    """
    await auth_service.logout(db, await _logout_token(http_request))
    return ApiResponse(data=MessageResponse(message="Logged out successfully"))


@router.get(
    "/me",
    response_model=ApiResponse[MeResponse],
    status_code=status.HTTP_200_OK,
    summary="Current user profile",
)
async def get_me(
    current_user: CurrentUser,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> ApiResponse[MeResponse]:
    """Return the caller with verification status and parent profile."""
    profile = await auth_service.get_profile(db, current_user.id)
    return ApiResponse(
        data=MeResponse(
            user=UserProfileResponse.model_validate(profile.user),
            verification_status=profile.verification_status,
            parent_profile=(
                ParentProfileResponse.model_validate(profile.parent_profile)
                if profile.parent_profile
                else None
            ),
        )
    )


@router.post(
    "/forgot-password",
    response_model=ApiResponse[MessageResponse],
    status_code=status.HTTP_200_OK,
    summary="Request a password reset email",
)
async def forgot_password(
    request: ForgotPasswordRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
    mailer: MailerDep,
    background_tasks: BackgroundTasks,
) -> ApiResponse[MessageResponse]:
    """
    Email a reset link when the account exists.

    The response is the same whether or not the email is registered.
    """
    try:
        ticket = await auth_service.forgot_password(db, request.email)
    except Exception as e:
        logger.warning("password_reset_lookup_failed", error=str(e))
        ticket = None
    if ticket is not None:
        background_tasks.add_task(
            deliver_safely,
            mailer.send_password_reset_email,
            ticket.email,
            ticket.name,
            ticket.link,
        )
    return ApiResponse(data=MessageResponse(message=FORGOT_PASSWORD_MESSAGE))


@router.post(
    "/reset-password",
    response_model=ApiResponse[ResetPasswordResponse],
    status_code=status.HTTP_200_OK,
    summary="Set a new password with a reset token",
)
async def reset_password(
    request: ResetPasswordRequest,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> ApiResponse[ResetPasswordResponse]:
    """
    Reset the password and start a new session.

    Every previous session is revoked.
    """
    user, tokens = await auth_service.reset_password(db, request.token, request.password)
    return ApiResponse(
        data=ResetPasswordResponse(
            user=UserResponse.model_validate(user),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            message="Password reset successful.",
        )
    )


@router.post(
    "/change-password",
    response_model=ApiResponse[MessageResponse],
    status_code=status.HTTP_200_OK,
    summary="Change the current user's password",
)
async def change_password(
    request: ChangePasswordRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
    auth_service: AuthServiceDep,
) -> ApiResponse[MessageResponse]:
    """Change the password; all refresh tokens are revoked."""
    await auth_service.change_password(
        db, current_user.id, request.current_password, request.new_password
    )
    return ApiResponse(data=MessageResponse(message="Password changed successfully"))
