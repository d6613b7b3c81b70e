from collections.abc import Awaitable
from typing import Any, Callable

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from estate_bot.geo_service.mapbox_client import MapboxGeocodingClient
from estate_bot.listing_form.registry import ListingFormRegistry


class ListingMiddleware(BaseMiddleware):
    """Hands the open-forms registry and the geocoding client to the handlers."""

    def __init__(self, registry: ListingFormRegistry, geocoding_client: MapboxGeocodingClient):
        self.registry = registry
        self.geocoding_client = geocoding_client

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        data["listing_registry"] = self.registry
        data["geocoding_client"] = self.geocoding_client
        return await handler(event, data)
