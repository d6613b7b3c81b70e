import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# The bot owns the table, the backend only reads it
from estate_bot.database.models import MapRequest


logger = logging.getLogger(__name__)


async def get_valid_map_request_by_token(
    token: str, db_session: AsyncSession
) -> MapRequest | None:
    """
    Looks the map request up by its token and checks that it has not expired.

    :return: the MapRequest, or None when it is unknown or expired.
    """
    logger.info(f"Looking up map token {token[:8]}...")

    stmt = select(MapRequest).where(MapRequest.request_token == token)
    result = await db_session.execute(stmt)
    map_request = result.scalar_one_or_none()

    if not map_request:
        logger.warning(f"Token {token[:8]}... not found.")
        return None

    # SQLite hands the timestamp back naive; it was stored in UTC
    expires_at = map_request.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at < datetime.now(timezone.utc):
        logger.warning(f"Token {token[:8]}... found but expired.")
        return None

    logger.info(f"Token {token[:8]}... is valid. Record ID: {map_request.id}.")
    return map_request
