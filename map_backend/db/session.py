import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from map_backend.core.config import get_env_settings


logger = logging.getLogger(__name__)


class DatabaseManager:
    """Read-only database access of the backend: the engine and its session factory."""

    def __init__(self, db_url: str, echo: bool = False):
        self._engine = create_async_engine(db_url, echo=echo)
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )
        logger.info("Backend DatabaseManager initialised.")

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("Backend connection pool closed.")

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory


settings = get_env_settings()
db_manager = DatabaseManager(settings.DATABASE_URL)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one database session per request."""
    async with db_manager.session_factory() as session:
        yield session
