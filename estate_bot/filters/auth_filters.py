import logging
from typing import Any

from aiogram.filters import BaseFilter
from aiogram.types import CallbackQuery, Message

from estate_bot.auth.user_session import UserSession


logger = logging.getLogger(__name__)


class IsLoggedInFilter(BaseFilter):
    """
    Passes only when the sender has an active session.
    The session itself comes from AuthMiddleware.
    """

    async def __call__(
        self, event: Message | CallbackQuery, user_session: UserSession | None = None, **kwargs: Any
    ) -> bool:
        if user_session is None:
            telegram_id = event.from_user.id if event.from_user else None
            logger.debug(f"IsLoggedInFilter: user {telegram_id} has no active session")
            return False
        return True
