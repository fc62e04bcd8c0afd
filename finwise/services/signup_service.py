"""Account creation: one transaction for the user and everything it owns."""

from dataclasses import dataclass

import structlog
from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from finwise.config import Settings
from finwise.core.exceptions import (
    ConflictException,
    InternalException,
    UnsupportedMediaException,
)
from finwise.core.security import PasswordService
from finwise.schemas.auth import ParentSignupRequest, SignupRequest
from finwise.services.mailer_service import MailerService, deliver_safely, redact_email
from finwise.services.storage_service import StorageAdapter, UploadedFile, UploadResult
from finwise.services.token_service import TokenPair, TokenService
from finwise.services.user_service import UserService

logger = structlog.get_logger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
ID_IMAGE_FOLDER = "id-verification"


@dataclass(frozen=True)
class SignupResult:
    """Newly created account and its first session."""

    user: dict
    verification_status: str
    tokens: TokenPair


class SignupService:
    """Create accounts with their verification state."""

    def __init__(
        self,
        settings: Settings,
        password_service: PasswordService,
        user_service: UserService,
        token_service: TokenService,
        storage: StorageAdapter,
        mailer: MailerService,
    ):
        """Initialize with collaborating services."""
        self.max_upload_bytes = settings.max_upload_bytes
        self.passwords = password_service
        self.users = user_service
        self.tokens = token_service
        self.storage = storage
        self.mailer = mailer

    def _check_image(self, data: SignupRequest, image: UploadedFile | None) -> None:
        if image is None:
            if data.role == "PARENT":
                raise UnsupportedMediaException("ID image is required for parent accounts")
            return
        if image.content_type not in ALLOWED_IMAGE_TYPES:
            raise UnsupportedMediaException(
                "Invalid file type. Only JPEG, PNG, and WebP images are allowed."
            )
        if image.size > self.max_upload_bytes:
            raise UnsupportedMediaException("ID image exceeds the maximum upload size")

    async def signup(
        self,
        db: AsyncSession,
        data: SignupRequest,
        image: UploadedFile | None,
        background_tasks: BackgroundTasks,
    ) -> SignupResult:
        """
        Register a user.

        Preconditions are checked before any side effect. The user, its
        verification request and, for parents, the parent profile are written
        in one transaction. Notifications are scheduled after commit and never
        fail the request.

        Args:
            db: Database session
            data: Validated signup fields
            image: Identity document image (required for parents)
            background_tasks: Where post-commit notifications are scheduled

        Returns:
            Created user, verification status and a token pair

        Raises:
            ConflictException: Email already registered
            UnsupportedMediaException: Missing or unsupported ID image
            InternalException: Upload or transaction failure
        """
        if await self.users.email_exists(db, data.email):
            raise ConflictException("Email already registered")

        self._check_image(data, image)

        password_hash = await run_in_threadpool(self.passwords.hash, data.password)

        uploaded: UploadResult | None = None
        if image is not None:
            try:
                uploaded = await self.storage.upload(image, ID_IMAGE_FOLDER)
            except Exception as e:
                logger.error("id_image_upload_failed", error=str(e))
                raise InternalException("Signup failed")

        try:
            user = await self.users.create_user(
                db,
                email=data.email,
                name=data.name,
                role=data.role,
                password_hash=password_hash,
            )
            verification = await self.users.create_verification_request(
                db,
                user["id"],
                data.role,
                id_image_url=uploaded.url if uploaded else None,
            )
            if isinstance(data, ParentSignupRequest):
                await self.users.create_parent_profile(db, user["id"], data)
            await db.commit()
        except Exception as e:
            await db.rollback()
            if uploaded is not None:
                await self._discard_upload(uploaded)
            if isinstance(e, IntegrityError):
                raise ConflictException("Email already registered")
            logger.error("signup_transaction_failed", error_type=type(e).__name__, error=str(e))
            raise InternalException("Signup failed")

        logger.info(
            "user_signed_up",
            user_id=str(user["id"]),
            role=user["role"],
            email=redact_email(user["email"]),
        )

        try:
            tokens = await self.tokens.generate_token_pair(
                db, user["id"], user["email"], user["role"]
            )
        except Exception as e:
            logger.error("signup_token_issue_failed", user_id=str(user["id"]), error=str(e))
            raise InternalException("Account created but session could not be started")

        self._schedule_notifications(background_tasks, user, image)

        return SignupResult(
            user=user,
            verification_status=verification["status"],
            tokens=tokens,
        )

    async def _discard_upload(self, uploaded: UploadResult) -> None:
        try:
            await self.storage.delete(uploaded.path)
        except Exception as e:
            logger.warning("orphan_upload_not_deleted", path=uploaded.path, error=str(e))

    def _schedule_notifications(
        self,
        background_tasks: BackgroundTasks,
        user: dict,
        image: UploadedFile | None,
    ) -> None:
        if user["role"] == "PARENT":
            background_tasks.add_task(
                deliver_safely, self.mailer.send_parent_welcome_email, user["email"], user["name"]
            )
            if image is not None:
                background_tasks.add_task(
                    deliver_safely,
                    self.mailer.send_parent_signup_notification_to_admin,
                    user["email"],
                    user["name"],
                    user["id"],
                    image.content,
                    image.filename or "id-image.jpg",
                )
        else:
            background_tasks.add_task(
                deliver_safely, self.mailer.send_child_welcome_email, user["email"], user["name"]
            )
