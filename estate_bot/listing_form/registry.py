import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from estate_bot.geo_service.location_resolver import LocationResolver
from estate_bot.listing_form.state_machine import ListingFormStateMachine


logger = logging.getLogger(__name__)


@dataclass
class ListingSession:
    """Form and location resolver of one user's open listing form."""

    form: ListingFormStateMachine = field(default_factory=ListingFormStateMachine)
    resolver: LocationResolver | None = None


class ListingFormRegistry:
    """Open listing forms keyed by Telegram user id. Lives as long as the bot process."""

    def __init__(self, resolver_factory: Callable[[], LocationResolver]):
        self._resolver_factory = resolver_factory
        self._sessions: dict[int, ListingSession] = {}

    def open(self, user_id: int) -> ListingSession:
        """Returns the user's form, starting a fresh one if there is none or it was closed."""
        session = self._sessions.get(user_id)
        if session is None or not session.form.is_open:
            session = ListingSession(resolver=self._resolver_factory())
            self._sessions[user_id] = session
            logger.debug(f"Listing form opened for user {user_id}")
        return session

    def get(self, user_id: int) -> ListingSession | None:
        session = self._sessions.get(user_id)
        if session is not None and not session.form.is_open:
            return None
        return session

    def discard(self, user_id: int) -> None:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return
        session.form.reset()
        if session.resolver is not None:
            session.resolver.clear()

    def __len__(self) -> int:
        return len(self._sessions)
