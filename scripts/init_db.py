"""Script to initialize the database without Alembic (local development)."""

import asyncio

from finwise.database import engine
from finwise.models import metadata


async def init_db() -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
