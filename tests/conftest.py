import os

# Settings are read at import time by several modules
os.environ.setdefault("BOT_TOKEN", "123456:TEST")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("MAPBOX_ACCESS_TOKEN", "pk.test-token")

import pytest
import pytest_asyncio

from estate_bot.database.engine import DatabaseManager
from estate_bot.listing_form.state_machine import ListingFormStateMachine


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    manager = DatabaseManager(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await manager.create_all()
    yield manager
    await manager.dispose()


@pytest_asyncio.fixture
async def session(db_manager):
    async with db_manager.session() as sess:
        yield sess


@pytest.fixture
def form() -> ListingFormStateMachine:
    return ListingFormStateMachine()
