"""Delete expired and long-revoked refresh tokens.

Meant to run from cron or a scheduled job, e.g. once a day.
"""

import asyncio

import structlog

from finwise.config import settings
from finwise.core.security import JwtService
from finwise.database import AsyncSessionLocal, engine
from finwise.middleware.logging import configure_logging
from finwise.services.token_service import TokenService


async def cleanup() -> int:
    """Run one cleanup pass and return the number of rows deleted."""
    token_service = TokenService(settings, JwtService(settings))
    async with AsyncSessionLocal() as db:
        deleted = await token_service.cleanup_expired_tokens(db)
    await engine.dispose()
    return deleted


if __name__ == "__main__":
    configure_logging(settings)
    count = asyncio.run(cleanup())
    structlog.get_logger().info("token_cleanup_finished", deleted=count)
