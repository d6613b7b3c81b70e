import asyncio
import enum
import logging
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from estate_bot.config.config import EnvSettings
from estate_bot.geo_service.errors import CredentialError, ProviderError
from estate_bot.geo_service.schemas import Coordinate, GeocodingFeature


logger = logging.getLogger(__name__)

SUGGESTION_TYPES = "place,locality,neighborhood,address,poi"
REVERSE_TYPES = "place,locality,neighborhood,address"


def is_valid_mapbox_token(token: Optional[str]) -> bool:
    """Public Mapbox tokens start with 'pk.'; placeholder tokens contain 'example'."""
    return bool(token) and token.startswith("pk.") and "example" not in token


class CircuitState(enum.Enum):
    CLOSED = "CLOSED"  # requests allowed
    OPEN = "OPEN"  # requests blocked
    HALF_OPEN = "HALF_OPEN"  # one probe request allowed


class MapboxGeocodingClient:
    """
    Async client for the Mapbox Geocoding v5 API.

    Key points:
    - Returns provider features as `GeocodingFeature` models.
    - Validates the access token before any network call (`CredentialError`).
    - Treats non-2xx answers and empty `features` as "no result" (empty list);
      5xx answers still count towards the circuit breaker.
    - Turns timeouts, connection failures and undecodable bodies into `ProviderError`.
    - Has a circuit breaker: after repeated failures requests fail fast
      for the cooldown period.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.mapbox.com",
        timeout: float = 5.0,
        cooldown_minutes: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        :param access_token: Mapbox public token ("pk.").
        :param base_url: API root, overridable for proxies and tests.
        :param timeout: Response timeout in seconds.
        :param cooldown_minutes: How long requests are blocked after the circuit opens.
        :param transport: Custom httpx transport (used by tests).
        """
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

        # --- circuit breaker ---
        self._circuit_state = CircuitState.CLOSED
        self._cooldown_period = timedelta(minutes=cooldown_minutes)
        self._last_failure_time: datetime | None = None
        self._lock = asyncio.Lock()
        self._failure_count = 0
        self._failure_threshold = 2

    @classmethod
    def from_settings(cls, settings: EnvSettings) -> "MapboxGeocodingClient":
        return cls(
            access_token=settings.MAPBOX_ACCESS_TOKEN,
            base_url=settings.MAPBOX_BASE_URL,
            timeout=settings.GEOCODING_TIMEOUT,
        )

    @property
    def has_valid_token(self) -> bool:
        return is_valid_mapbox_token(self.access_token)

    @property
    def circuit_state(self) -> CircuitState:
        return self._circuit_state

    async def forward(
        self, query: str, limit: int = 5, types: str | None = SUGGESTION_TYPES
    ) -> list[GeocodingFeature]:
        """
        Forward geocoding: free text to ranked features.

        :param query: Address or place name.
        :param limit: Maximum number of features.
        :param types: Comma separated feature types, None for provider default.
        :return: Features in provider ranking order, possibly empty.
        """
        params: dict[str, str | int] = {"limit": limit}
        if types:
            params["types"] = types
        path = f"/geocoding/v5/mapbox.places/{quote(query, safe='')}.json"
        return await self._get_features(path, params)

    async def reverse(
        self, coordinate: Coordinate, types: str | None = REVERSE_TYPES
    ) -> list[GeocodingFeature]:
        """Reverse geocoding: a coordinate to the features that contain it."""
        params: dict[str, str | int] = {}
        if types:
            params["types"] = types
        path = f"/geocoding/v5/mapbox.places/{coordinate.longitude},{coordinate.latitude}.json"
        return await self._get_features(path, params)

    async def _get_features(
        self, path: str, params: dict[str, str | int]
    ) -> list[GeocodingFeature]:
        if not self.has_valid_token:
            logger.error("MAPBOX_CLIENT: Access token is missing or invalid.")
            raise CredentialError("Mapbox access token is missing or invalid")

        async with self._lock:
            if self._circuit_state == CircuitState.OPEN:
                if datetime.now() > self._last_failure_time + self._cooldown_period:
                    self._circuit_state = CircuitState.HALF_OPEN
                    logger.warning(
                        "MAPBOX_CLIENT: Cooldown over. Circuit is now HALF-OPEN. Trying one request..."
                    )
                else:
                    logger.warning(f"MAPBOX_CLIENT: Circuit is OPEN. Failing fast for {path}.")
                    raise ProviderError("Geocoding provider is temporarily unavailable")

        try:
            response = await self.client.get(
                path, params={**params, "access_token": self.access_token}
            )
            data = response.json() if response.is_success else None
        except (httpx.HTTPError, ValueError) as e:
            # ValueError covers bodies that are not UTF-8 or not JSON
            logger.warning(f"MAPBOX_CLIENT: Network or API error: {type(e).__name__}")
            await self._handle_failure()
            raise ProviderError(f"Geocoding request failed: {type(e).__name__}") from e

        if response.is_server_error:
            await self._handle_failure()
        else:
            await self._handle_success()

        if data is None:
            logger.warning(
                f"MAPBOX_CLIENT: Provider answered {response.status_code}, treating as no result."
            )
            return []

        raw_features = data.get("features") if isinstance(data, dict) else None
        if not raw_features:
            return []

        features = []
        for raw in raw_features:
            try:
                features.append(GeocodingFeature.model_validate(raw))
            except PydanticValidationError:
                logger.debug(f"MAPBOX_CLIENT: Skipping malformed feature: {raw!r}")
        return features

    async def _handle_success(self):
        """Resets the failure counter and closes the circuit."""
        async with self._lock:
            if self._circuit_state == CircuitState.HALF_OPEN:
                logger.info("MAPBOX_CLIENT: Success on HALF-OPEN. Circuit is now CLOSED.")
            self._failure_count = 0
            self._circuit_state = CircuitState.CLOSED

    async def _handle_failure(self):
        """Counts a failure and opens the circuit once the threshold is reached."""
        async with self._lock:
            if self._circuit_state == CircuitState.HALF_OPEN:
                self._circuit_state = CircuitState.OPEN
                self._last_failure_time = datetime.now()
                logger.error(
                    f"MAPBOX_CLIENT: Failure on HALF-OPEN. Circuit is OPEN again for {self._cooldown_period}."
                )
            else:
                self._failure_count += 1
                if self._failure_count >= self._failure_threshold:
                    self._circuit_state = CircuitState.OPEN
                    self._last_failure_time = datetime.now()
                    logger.error(
                        f"MAPBOX_CLIENT: Failure threshold reached. Circuit is now OPEN for {self._cooldown_period}."
                    )

    async def close(self):
        """Closes the underlying httpx client."""
        if not self.client.is_closed:
            await self.client.aclose()
