import asyncio
import contextlib
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from estate_bot.auth.user_session import SessionManager
from estate_bot.config.config import get_env_settings
from estate_bot.database.engine import DatabaseManager
from estate_bot.database.maintenance import run_map_request_cleanup
from estate_bot.geo_service.location_resolver import LocationResolver
from estate_bot.geo_service.mapbox_client import MapboxGeocodingClient
from estate_bot.handlers.add_listing_handlers import add_listing_router
from estate_bot.handlers.common_handlers import common_router, fallback_router
from estate_bot.handlers.saved_handlers import saved_router
from estate_bot.handlers.search_handlers import search_router
from estate_bot.listing_form.registry import ListingFormRegistry
from estate_bot.middlewares.auth_middleware import AuthMiddleware
from estate_bot.middlewares.db_session_middleware import DbSessionMiddleware
from estate_bot.middlewares.listing_middleware import ListingMiddleware


logging.basicConfig(
    level=logging.DEBUG, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)

# aiosqlite debug output is too chatty
logging.getLogger("aiosqlite").setLevel(logging.INFO)

logger = logging.getLogger(__name__)


async def main() -> None:
    env_settings = get_env_settings()

    geocoding_client = MapboxGeocodingClient.from_settings(env_settings)
    if not geocoding_client.has_valid_token:
        logger.error("MAPBOX_ACCESS_TOKEN is missing or invalid: address search and maps are disabled.")

    def make_resolver() -> LocationResolver:
        return LocationResolver(
            geocoding_client,
            debounce_seconds=env_settings.GEOCODING_DEBOUNCE_MS / 1000,
            min_query_length=env_settings.GEOCODING_MIN_QUERY_LENGTH,
        )

    listing_registry = ListingFormRegistry(resolver_factory=make_resolver)
    session_manager = SessionManager()

    db_manager = DatabaseManager(url=env_settings.DATABASE_URL)
    await db_manager.create_all()

    default_props = DefaultBotProperties(parse_mode=ParseMode.HTML)
    bot = Bot(token=env_settings.BOT_TOKEN, default=default_props)

    dp = Dispatcher()

    dp.update.middleware(DbSessionMiddleware(session_pool=db_manager.session_factory))
    dp.update.middleware(AuthMiddleware(session_manager=session_manager, env_settings=env_settings))
    dp.update.middleware(ListingMiddleware(registry=listing_registry, geocoding_client=geocoding_client))

    dp.include_router(common_router)
    dp.include_router(add_listing_router)
    dp.include_router(search_router)
    dp.include_router(saved_router)
    dp.include_router(fallback_router)

    await bot.delete_webhook(drop_pending_updates=True)

    cleanup_task = asyncio.create_task(
        run_map_request_cleanup(
            db_manager.session_factory, env_settings.MAP_REQUEST_CLEANUP_INTERVAL_MINUTES * 60
        )
    )

    try:
        logger.info("Starting polling...")
        await dp.start_polling(bot)
    except Exception as e:
        logger.error(f"Bot stopped with an error: {e}", exc_info=True)
    finally:
        logger.info("Stopping the bot...")
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task
        await bot.session.close()
        await geocoding_client.close()
        await db_manager.dispose()
        logger.info("Bot stopped.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Interrupted by the user (KeyboardInterrupt/SystemExit).")
