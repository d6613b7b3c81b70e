import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from estate_bot.database.models import User


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserSession:
    """Authenticated user, passed explicitly to whatever acts on their behalf."""

    telegram_id: int
    user_id: int
    display_name: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionManager:
    """
    Active sessions of the bot process.

    A session starts on /start (login) and ends on /logout. Handlers that act
    for a user receive the session from the auth middleware, never from a
    global.
    """

    def __init__(self):
        self._sessions: dict[int, UserSession] = {}

    def login(self, user: User) -> UserSession:
        session = UserSession(
            telegram_id=user.telegram_id,
            user_id=user.id,
            display_name=user.display_name or user.username or str(user.telegram_id),
        )
        self._sessions[user.telegram_id] = session
        logger.info(f"Session started for user {user.telegram_id}")
        return session

    def logout(self, telegram_id: int) -> bool:
        session = self._sessions.pop(telegram_id, None)
        if session is None:
            return False
        logger.info(f"Session ended for user {telegram_id}")
        return True

    def get(self, telegram_id: int) -> UserSession | None:
        return self._sessions.get(telegram_id)
