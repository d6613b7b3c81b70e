import logging

from aiogram.types import Message
from pydantic import ValidationError as PydanticValidationError

from estate_bot.geo_service.errors import PermissionDeniedError, UnavailableError
from estate_bot.geo_service.schemas import Coordinate


logger = logging.getLogger(__name__)

DENY_LOCATION_TEXT = "🚫 Don't share location"


class SharedLocationLocator:
    """
    Device position taken from a Telegram message.

    The "share location" reply button and a pin dropped on the Telegram map
    both arrive as a `location`; a venue carries one too. Pressing the deny
    button means the user refused.
    """

    def __init__(self, message: Message, deny_text: str = DENY_LOCATION_TEXT):
        self.message = message
        self.deny_text = deny_text

    async def current_position(self) -> Coordinate:
        location = self.message.location
        if location is None and self.message.venue is not None:
            location = self.message.venue.location

        if location is None:
            if self.message.text and self.message.text.strip() == self.deny_text:
                raise PermissionDeniedError("User declined to share the location")
            raise UnavailableError("Message does not carry a location")

        try:
            return Coordinate(latitude=location.latitude, longitude=location.longitude)
        except PydanticValidationError as e:
            logger.warning(f"Shared location out of range: {location.latitude}, {location.longitude}")
            raise UnavailableError("Shared location is out of range") from e
