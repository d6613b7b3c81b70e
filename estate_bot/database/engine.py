import contextlib
import logging
from collections.abc import AsyncIterator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from estate_bot.database.models import Base


logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """
    Owns the bot's engine and hands out sessions.

    Property images and saved entries are removed together with their
    property, so on SQLite foreign keys are switched on for every connection.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = make_url(url)
        self._engine = create_async_engine(self.url, echo=echo, pool_pre_ping=True)
        if self.url.get_backend_name() == "sqlite":
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = async_sessionmaker(
            self._engine, expire_on_commit=False, autoflush=False
        )
        logger.info(f"Database engine ready: {self.url.render_as_string(hide_password=True)}")

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Passed to the session middleware and to listing submitters."""
        return self._session_factory

    async def create_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """One transaction: committed when the block exits, rolled back if it raises."""
        async with self._session_factory.begin() as sess:
            yield sess

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed")
