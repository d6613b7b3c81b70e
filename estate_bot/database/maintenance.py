import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from estate_bot.database import crud


logger = logging.getLogger(__name__)


async def purge_expired_map_requests(session_pool: async_sessionmaker[AsyncSession]) -> int:
    async with session_pool.begin() as session:
        return await crud.delete_expired_map_requests(session)


async def run_map_request_cleanup(
    session_pool: async_sessionmaker[AsyncSession], interval_seconds: float
) -> None:
    """
    Purges expired map links every `interval_seconds` until cancelled.

    Every search result, saved list and map button stores a map request, so
    without this the table only grows. A failed pass is logged and retried
    on the next tick.
    """
    logger.info(f"Map request cleanup every {interval_seconds:.0f}s")
    while True:
        try:
            await purge_expired_map_requests(session_pool)
        except Exception as e:
            logger.error(f"Map request cleanup failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)
