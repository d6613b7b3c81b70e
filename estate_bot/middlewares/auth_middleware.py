import logging
from collections.abc import Awaitable
from typing import Any, Callable

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from estate_bot.auth.user_session import SessionManager
from estate_bot.config.config import EnvSettings


logger = logging.getLogger(__name__)


class AuthMiddleware(BaseMiddleware):
    """
    Puts the sender's `UserSession` (or None when logged out) into the handler
    data, together with the session manager and the settings.
    """

    def __init__(self, session_manager: SessionManager, env_settings: EnvSettings):
        self.session_manager = session_manager
        self.env_settings = env_settings

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        data["session_manager"] = self.session_manager
        data["env_settings"] = self.env_settings

        event_user = data.get("event_from_user")
        if not event_user:
            # Channel posts and the like have no sender
            data["user_session"] = None
            return await handler(event, data)

        data["user_session"] = self.session_manager.get(event_user.id)
        return await handler(event, data)
