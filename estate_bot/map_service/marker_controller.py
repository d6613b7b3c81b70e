import dataclasses
import enum
import html
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from estate_bot.config import map_config
from estate_bot.geo_service.errors import CredentialError
from estate_bot.geo_service.mapbox_client import is_valid_mapbox_token
from estate_bot.geo_service.schemas import Coordinate
from estate_bot.map_service.renderer import (
    Bounds,
    FitBoundsOptions,
    MapInitConfig,
    MapRenderer,
    MarkerElement,
    MarkerHandle,
    MarkerStyle,
)


logger = logging.getLogger(__name__)


class MapInitError(Exception):
    """The map provider could not create the map."""


class MapControllerError(Exception):
    """Operation is not allowed in the current map state."""


class MapState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    DISPOSED = "disposed"


@dataclass
class PropertyMarker:
    id: str
    title: str
    price_label: str
    location_label: str
    coordinate: Coordinate
    hover_active: bool = False


@dataclass
class _LiveMarker:
    marker: PropertyMarker
    handle: MarkerHandle
    element: MarkerElement


def build_popup_html(marker: PropertyMarker) -> str:
    return (
        f"<div class=\"marker-popup\">"
        f"<h3>{html.escape(marker.title)}</h3>"
        f"<p class=\"price\">{html.escape(marker.price_label)}</p>"
        f"<p class=\"location\">{html.escape(marker.location_label)}</p>"
        f"</div>"
    )


class MapMarkerController:
    """
    Keeps the markers of one map instance in line with a property list.

    Every sync tears the previous markers down (listeners included) and builds
    new ones from scratch, then fits the viewport to cover all of them.
    Failure to initialise is terminal for the instance: a new controller is
    needed to try again.
    """

    def __init__(
        self,
        renderer: MapRenderer,
        on_marker_click: Callable[[PropertyMarker], Any] | None = None,
        style: str = map_config.DEFAULT_STYLE,
        center: tuple[float, float] = map_config.DEFAULT_CENTER,
        zoom: float = map_config.DEFAULT_ZOOM,
        fit_options: FitBoundsOptions | None = None,
    ):
        self._renderer = renderer
        self._on_marker_click = on_marker_click
        self._style = style
        self._center = center
        self._zoom = zoom
        self._fit_options = fit_options or FitBoundsOptions()

        self.state = MapState.UNINITIALIZED
        self.error: Exception | None = None
        self._live: dict[str, _LiveMarker] = {}

    # --- Lifecycle ---

    async def initialize(self, credential: str) -> None:
        """
        :raises CredentialError: the credential is missing or malformed.
        :raises MapInitError: the renderer failed to load the map.
        """
        if self.state is not MapState.UNINITIALIZED:
            raise MapControllerError(f"Map cannot be initialised from state '{self.state.value}'")

        self.state = MapState.LOADING
        if not is_valid_mapbox_token(credential):
            self.state = MapState.ERROR
            self.error = CredentialError("Mapbox access token is missing or invalid")
            logger.error("Map initialisation aborted: Mapbox access token is missing or invalid.")
            raise self.error

        config = MapInitConfig(
            style=self._style, center=self._center, zoom=self._zoom, credential=credential
        )
        try:
            await self._renderer.load(config)
        except Exception as e:
            self.state = MapState.ERROR
            self.error = e
            logger.error(f"Map provider failed to initialise: {e}", exc_info=True)
            raise MapInitError(str(e)) from e

        self.state = MapState.READY
        logger.debug("Map is ready")

    def dispose(self) -> None:
        if self.state is MapState.DISPOSED:
            return
        self._teardown_markers()
        if self.state in (MapState.READY, MapState.LOADING):
            self._renderer.remove()
        self.state = MapState.DISPOSED

    # --- Markers ---

    @property
    def markers(self) -> list[PropertyMarker]:
        return [live.marker for live in self._live.values()]

    @property
    def live_marker_count(self) -> int:
        return len(self._live)

    @property
    def live_listener_count(self) -> int:
        return sum(live.element.listener_count for live in self._live.values())

    def sync(self, markers: list[PropertyMarker]) -> None:
        """Replaces the whole marker set and fits the viewport around it."""
        if self.state is not MapState.READY:
            raise MapControllerError(f"Markers cannot be synced in state '{self.state.value}'")

        self._teardown_markers()
        if not markers:
            return

        for marker in markers:
            if marker.id in self._live:
                logger.warning(f"Duplicate marker id '{marker.id}' skipped")
                continue
            self._add_marker(marker)

        bounds = Bounds.from_coordinates([live.marker.coordinate for live in self._live.values()])
        self._renderer.fit_bounds(bounds, self._fit_options)
        logger.debug(f"Synced {len(self._live)} markers")

    def _add_marker(self, marker: PropertyMarker) -> None:
        # Hover state lives on the controller's copy, the caller's marker is left alone
        marker = dataclasses.replace(marker, hover_active=False)
        element = MarkerElement(
            marker_id=marker.id,
            title=marker.title,
            price_label=marker.price_label,
            location_label=marker.location_label,
            style=MarkerStyle(),
            popup_html=build_popup_html(marker),
        )
        element.add_listener("click", lambda: self.on_marker_click(marker.id))
        element.add_listener("mouseenter", lambda: self.set_hover(marker.id, True))
        element.add_listener("mouseleave", lambda: self.set_hover(marker.id, False))

        handle = self._renderer.add_marker(marker.coordinate, element)
        self._live[marker.id] = _LiveMarker(marker=marker, handle=handle, element=element)

    def _teardown_markers(self) -> None:
        for live in self._live.values():
            live.element.remove_all_listeners()
            self._renderer.remove_marker(live.handle)
        self._live.clear()

    # --- Interaction ---

    def dispatch(self, marker_id: str, event: str) -> None:
        """Feeds a pointer event from the map surface to the marker's listeners."""
        live = self._live.get(marker_id)
        if live is None:
            logger.debug(f"Event '{event}' for unknown marker '{marker_id}' ignored")
            return
        live.element.emit(event)

    def on_marker_click(self, marker_id: str) -> None:
        live = self._live.get(marker_id)
        if live is None or self._on_marker_click is None:
            return
        self._on_marker_click(live.marker)

    def set_hover(self, marker_id: str, active: bool) -> None:
        live = self._live.get(marker_id)
        if live is None:
            return
        live.marker.hover_active = active
        style = live.element.style
        if active:
            style.background_color = map_config.MARKER_HOVER_COLOR
            style.scale = map_config.MARKER_HOVER_SCALE
        else:
            style.background_color = map_config.MARKER_COLOR
            style.scale = 1.0
