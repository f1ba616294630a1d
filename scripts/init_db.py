"""Create all tables directly, for local development without migrations."""

import asyncio

import structlog

from app.database import engine
from app.middleware.logging import configure_logging
from app.models import metadata

logger = structlog.get_logger()


async def init_db() -> None:
    """Create every table that does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    logger.info("database_initialized", tables=len(metadata.tables))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
