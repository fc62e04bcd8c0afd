"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from finwise.api.v1.router import api_router
from finwise.config import Settings, settings
from finwise.core.exceptions import AppException
from finwise.core.rate_limit import AttemptLimiter
from finwise.core.security import JwtService, PasswordService
from finwise.database import check_database_connection, engine
from finwise.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from finwise.middleware.logging import LoggingMiddleware, configure_logging
from finwise.services.auth_service import AuthService
from finwise.services.mailer_service import MailerService
from finwise.services.oauth_service import OAuthService
from finwise.services.signup_service import SignupService
from finwise.services.storage_service import build_storage
from finwise.services.token_service import TokenService
from finwise.services.user_service import UserService

# Configure logging
configure_logging(settings)
logger = structlog.get_logger()


def build_services(app: FastAPI, config: Settings) -> None:
    """Construct the service graph once and attach it to ``app.state``."""
    password_service = PasswordService()
    jwt_service = JwtService(config)
    user_service = UserService()
    token_service = TokenService(config, jwt_service)
    storage = build_storage(config)
    mailer = MailerService(config)

    app.state.settings = config
    app.state.password_service = password_service
    app.state.jwt_service = jwt_service
    app.state.user_service = user_service
    app.state.token_service = token_service
    app.state.storage = storage
    app.state.mailer = mailer
    app.state.auth_rate_limiter = AttemptLimiter(
        config.auth_rate_limit_attempts, config.auth_rate_limit_window_seconds
    )
    app.state.oauth_service = OAuthService(config, user_service, token_service)
    app.state.signup_service = SignupService(
        config, password_service, user_service, token_service, storage, mailer
    )
    app.state.auth_service = AuthService(
        config, password_service, jwt_service, user_service, token_service
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("application_startup", environment=settings.environment)

    if await check_database_connection():
        logger.info("database_connected")
    else:
        logger.error("database_connection_failed")

    if not settings.google_client_id:
        logger.warning("oauth_provider_not_configured", provider="google")
    if not settings.apple_client_id:
        logger.warning("oauth_provider_not_configured", provider="apple")
    if not settings.smtp_host:
        logger.warning("smtp_not_configured", note="Emails will be logged instead of sent")

    yield

    logger.info("application_shutdown")
    await engine.dispose()
    logger.info("database_connections_closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Authentication and session management for the FinWise household finance app",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

build_services(app, settings)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Add exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, general_exception_handler)  # type: ignore[arg-type]

# Include API router
app.include_router(api_router, prefix=settings.api_v1_prefix)

# Setup Prometheus instrumentation
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "finwise.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
