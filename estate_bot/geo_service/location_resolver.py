import enum
import logging
from typing import Protocol

from estate_bot.geo_service.debounce import Debouncer
from estate_bot.geo_service.errors import (
    CredentialError,
    LocationError,
    NoResultsError,
    ProviderError,
    SupersededError,
)
from estate_bot.geo_service.mapbox_client import MapboxGeocodingClient
from estate_bot.geo_service.schemas import Coordinate, LocationSuggestion, SelectedLocation


logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3
DEFAULT_MIN_QUERY_LENGTH = 3
DEFAULT_SUGGESTION_LIMIT = 5


class Intent(str, enum.Enum):
    """What the user is doing to pick a location. One intent is in flight per session."""

    TYPING = "typing"
    MAP_CLICK = "map_click"
    CURRENT_LOCATION = "current_location"


class DeviceLocator(Protocol):
    """Source of the device position (browser geolocation, a shared Telegram pin, ...)."""

    async def current_position(self) -> Coordinate:
        """
        :raises PermissionDeniedError: the user refused to share the position.
        :raises UnavailableError: the position is not available.
        """
        ...


class LocationResolver:
    """
    Converts between free-text addresses and coordinates for one resolution session.

    - `search` gives debounced autocomplete suggestions; a newer query always wins.
    - `resolve_forward` geocodes an explicitly submitted address.
    - `resolve_reverse` labels a coordinate and never fails on provider errors.
    - `use_current_device` reads the device position.

    Typing, map clicks and "use current location" share one intent lock:
    starting a new intent supersedes whatever was in flight.
    """

    def __init__(
        self,
        client: MapboxGeocodingClient,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        min_query_length: int = DEFAULT_MIN_QUERY_LENGTH,
        suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
    ):
        self._client = client
        self._debouncer = Debouncer(debounce_seconds)
        self.min_query_length = min_query_length
        self.suggestion_limit = suggestion_limit

        self.query = ""
        self.suggestions: list[LocationSuggestion] = []
        self.selected: SelectedLocation | None = None
        self.last_error: LocationError | None = None
        self.is_loading = False

        self._intent: Intent | None = None
        self._intent_generation = 0

    @property
    def has_credential(self) -> bool:
        return self._client.has_valid_token

    @property
    def current_intent(self) -> Intent | None:
        return self._intent

    def _begin_intent(self, intent: Intent) -> int:
        if self._intent is not None and self._intent is not intent:
            logger.debug(f"Intent '{self._intent.value}' superseded by '{intent.value}'")
        self._intent = intent
        self._intent_generation += 1
        if intent is not Intent.TYPING:
            self._debouncer.cancel_pending()
        return self._intent_generation

    def _ensure_current(self, generation: int) -> None:
        if generation != self._intent_generation:
            raise SupersededError(f"Intent #{generation} was superseded")

    async def search(self, query: str) -> list[LocationSuggestion] | None:
        """
        Debounced autocomplete.

        :return: the new live suggestion list; an empty list when the query is
            too short or the provider failed; None when a newer request
            superseded this one.
        """
        self.query = query
        generation = self._begin_intent(Intent.TYPING)

        if len(query.strip()) < self.min_query_length:
            self._debouncer.cancel_pending()
            self.suggestions = []
            return []

        if not self.has_credential:
            self._debouncer.cancel_pending()
            self.last_error = CredentialError("Mapbox access token is missing or invalid")
            logger.error("Address search skipped: geocoding credential is missing or invalid.")
            self.suggestions = []
            return []

        handle = self._debouncer.schedule(lambda: self._fetch_suggestions(query))
        try:
            suggestions = await handle.result()
        except SupersededError:
            logger.debug(f"Suggestions for '{query}' discarded, a newer query was issued.")
            return None
        except ProviderError as e:
            if generation != self._intent_generation:
                return None
            logger.warning(f"Address search failed for '{query}': {e}")
            self.last_error = e
            self.suggestions = []
            return []

        if generation != self._intent_generation:
            return None

        self.last_error = None
        self.suggestions = suggestions
        return list(suggestions)

    async def _fetch_suggestions(self, query: str) -> list[LocationSuggestion]:
        self.is_loading = True
        try:
            features = await self._client.forward(query, limit=self.suggestion_limit)
        finally:
            self.is_loading = False
        return [LocationSuggestion.from_feature(feature) for feature in features]

    def select_suggestion(self, suggestion: LocationSuggestion) -> SelectedLocation:
        """Confirms a suggestion. The coordinate is carried over untouched."""
        self._begin_intent(Intent.TYPING)
        self._debouncer.cancel_pending()

        selection = SelectedLocation(
            coordinate=suggestion.coordinate, address=suggestion.display_label
        )
        self.selected = selection
        self.query = selection.address
        self.suggestions = []
        return selection

    async def resolve_forward(self, address: str) -> SelectedLocation:
        """
        Geocodes a fully typed address and selects the top-ranked result.

        On any failure the previous selection stays as it was.

        :raises NoResultsError: zero matches.
        :raises ProviderError: credential or network failure.
        :raises SupersededError: another intent started meanwhile.
        """
        address = address.strip()
        if not address:
            raise NoResultsError(address)

        generation = self._begin_intent(Intent.TYPING)
        self._debouncer.cancel_pending()
        self.suggestions = []

        self.is_loading = True
        try:
            features = await self._client.forward(address, limit=1, types=None)
        finally:
            self.is_loading = False

        self._ensure_current(generation)
        if not features:
            logger.info(f"Forward geocoding found nothing for '{address}'.")
            raise NoResultsError(address)

        top = features[0]
        selection = SelectedLocation(
            coordinate=Coordinate.from_lng_lat(top.center), address=top.place_name
        )
        self.selected = selection
        self.query = selection.address
        return selection

    async def resolve_reverse(
        self, coordinate: Coordinate, intent: Intent = Intent.MAP_CLICK
    ) -> SelectedLocation:
        """
        Labels a coordinate picked on the map or reported by the device.

        Provider failures and empty answers fall back to "lat, lng" with six
        decimals, so selecting a location is never blocked by labelling.
        """
        generation = self._begin_intent(intent)

        self.is_loading = True
        try:
            features = await self._client.reverse(coordinate)
        except ProviderError as e:
            logger.warning(f"Reverse geocoding failed for {coordinate.as_label()}: {e}")
            self.last_error = e
            features = []
        finally:
            self.is_loading = False

        self._ensure_current(generation)
        address = features[0].place_name if features else coordinate.as_label()
        selection = SelectedLocation(coordinate=coordinate, address=address)
        self.selected = selection
        self.query = address
        self.suggestions = []
        return selection

    async def use_current_device(self, locator: DeviceLocator) -> Coordinate:
        """
        Reads the device position. Failures are surfaced once and never retried.

        :raises PermissionDeniedError, UnavailableError: from the locator.
        """
        generation = self._begin_intent(Intent.CURRENT_LOCATION)
        coordinate = await locator.current_position()
        self._ensure_current(generation)
        return coordinate

    async def locate_device(self, locator: DeviceLocator) -> SelectedLocation:
        """Device position followed by reverse geocoding, as one user action."""
        coordinate = await self.use_current_device(locator)
        return await self.resolve_reverse(coordinate, intent=Intent.CURRENT_LOCATION)

    def clear(self) -> None:
        """Drops the query, the live list, the selection and any pending request."""
        self._debouncer.cancel_pending()
        self._intent_generation += 1
        self._intent = None
        self.query = ""
        self.suggestions = []
        self.selected = None
        self.last_error = None
