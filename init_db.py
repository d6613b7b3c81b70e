#!/usr/bin/env python3
"""
Creates the database tables.
"""

import asyncio
import logging

from estate_bot.config.config import get_env_settings
from estate_bot.database.engine import DatabaseManager


logger = logging.getLogger(__name__)


async def init_database():
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )

    settings = get_env_settings()
    db_manager = DatabaseManager(url=settings.DATABASE_URL)
    try:
        await db_manager.create_all()
        logger.info("Database initialised.")
    except Exception as e:
        logger.error(f"Database initialisation failed: {e}", exc_info=True)
        raise
    finally:
        await db_manager.dispose()


if __name__ == "__main__":
    asyncio.run(init_database())
