import itertools
import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pyproj import CRS, Transformer

from estate_bot.config import map_config
from estate_bot.geo_service.errors import CredentialError
from estate_bot.geo_service.mapbox_client import is_valid_mapbox_token
from estate_bot.geo_service.schemas import Coordinate
from estate_bot.schemas import MapMarkerData, MapViewData, MapViewport


logger = logging.getLogger(__name__)

# --- Coordinate systems ---
CRS_WGS84 = CRS.from_epsg(4326)
CRS_WEB_MERCATOR = CRS.from_epsg(3857)

# Web Mercator is undefined at the poles
MERCATOR_MAX_LATITUDE = 85.051129
EARTH_CIRCUMFERENCE_M = 2 * math.pi * 6378137
TILE_SIZE_PX = 512


@dataclass
class MarkerStyle:
    size: int = map_config.MARKER_SIZE
    background_color: str = map_config.MARKER_COLOR
    border_color: str = map_config.MARKER_BORDER_COLOR
    border_width: int = map_config.MARKER_BORDER_WIDTH
    scale: float = 1.0


@dataclass
class MarkerElement:
    """Visual element of a marker together with its event listeners."""

    marker_id: str
    title: str = ""
    price_label: str = ""
    location_label: str = ""
    style: MarkerStyle = field(default_factory=MarkerStyle)
    popup_html: str | None = None
    _listeners: dict[str, list[Callable[[], Any]]] = field(default_factory=dict)

    def add_listener(self, event: str, callback: Callable[[], Any]) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return sum(len(callbacks) for callbacks in self._listeners.values())

    def emit(self, event: str) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback()


class MarkerHandle:
    """Opaque reference to a marker owned by a renderer."""

    _ids = itertools.count(1)

    __slots__ = ("_id",)

    def __init__(self):
        self._id = next(self._ids)

    def __repr__(self) -> str:
        return f"<MarkerHandle #{self._id}>"


@dataclass(frozen=True)
class Bounds:
    west: float
    south: float
    east: float
    north: float

    @classmethod
    def from_coordinates(cls, coordinates: list[Coordinate]) -> "Bounds":
        if not coordinates:
            raise ValueError("Bounds need at least one coordinate")
        return cls(
            west=min(c.longitude for c in coordinates),
            south=min(c.latitude for c in coordinates),
            east=max(c.longitude for c in coordinates),
            north=max(c.latitude for c in coordinates),
        )

    def contains(self, coordinate: Coordinate) -> bool:
        return (
            self.south <= coordinate.latitude <= self.north
            and self.west <= coordinate.longitude <= self.east
        )

    def as_list(self) -> list[list[float]]:
        return [[self.west, self.south], [self.east, self.north]]


@dataclass(frozen=True)
class FitBoundsOptions:
    padding: dict[str, int] = field(default_factory=lambda: dict(map_config.FIT_BOUNDS_PADDING))
    max_zoom: float = map_config.MAX_ZOOM
    duration_ms: int = map_config.FIT_BOUNDS_DURATION_MS


@dataclass(frozen=True)
class MapInitConfig:
    style: str
    center: tuple[float, float]  # (lng, lat)
    zoom: float
    credential: str


class MapRenderer(ABC):
    """Contract of the map rendering service used by the marker controller."""

    @abstractmethod
    async def load(self, config: MapInitConfig) -> None:
        """Initialises the map. Raises when the map cannot be created."""

    @abstractmethod
    def add_marker(self, coordinate: Coordinate, element: MarkerElement) -> MarkerHandle:
        ...

    @abstractmethod
    def remove_marker(self, handle: MarkerHandle) -> None:
        ...

    @abstractmethod
    def fit_bounds(self, bounds: Bounds, options: FitBoundsOptions) -> None:
        ...

    @abstractmethod
    def remove(self) -> None:
        """Destroys the map instance."""


class SnapshotMapRenderer(MapRenderer):
    """
    Renderer that records the map state instead of drawing it.

    The snapshot is serialised with `to_view_data()` and handed to the web map
    page, which replays it with the Mapbox GL SDK. The fitted camera is
    computed here in Web Mercator so the page opens at the right place.
    """

    def __init__(
        self,
        viewport_width: int = map_config.VIEWPORT_WIDTH_PX,
        viewport_height: int = map_config.VIEWPORT_HEIGHT_PX,
    ):
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self._transformer = Transformer.from_crs(CRS_WGS84, CRS_WEB_MERCATOR, always_xy=True)
        self._inverse = Transformer.from_crs(CRS_WEB_MERCATOR, CRS_WGS84, always_xy=True)

        self.config: MapInitConfig | None = None
        self.markers: dict[MarkerHandle, tuple[Coordinate, MarkerElement]] = {}
        self.viewport: MapViewport | None = None
        self.fit_bounds_calls = 0
        self.removed = False

    async def load(self, config: MapInitConfig) -> None:
        if not is_valid_mapbox_token(config.credential):
            raise CredentialError("Mapbox access token is missing or invalid")
        self.config = config
        self.removed = False
        logger.debug(f"Snapshot map loaded with style {config.style}")

    def add_marker(self, coordinate: Coordinate, element: MarkerElement) -> MarkerHandle:
        handle = MarkerHandle()
        self.markers[handle] = (coordinate, element)
        return handle

    def remove_marker(self, handle: MarkerHandle) -> None:
        if self.markers.pop(handle, None) is None:
            logger.debug(f"{handle!r} is not on the map, nothing to remove")

    def fit_bounds(self, bounds: Bounds, options: FitBoundsOptions) -> None:
        center, zoom = self._fit_camera(bounds, options)
        self.viewport = MapViewport(
            bounds=bounds.as_list(),
            padding=dict(options.padding),
            max_zoom=options.max_zoom,
            duration_ms=options.duration_ms,
            center=center,
            zoom=zoom,
        )
        self.fit_bounds_calls += 1

    def remove(self) -> None:
        self.markers.clear()
        self.viewport = None
        self.removed = True

    def _project(self, lng: float, lat: float) -> tuple[float, float]:
        lat = max(-MERCATOR_MAX_LATITUDE, min(MERCATOR_MAX_LATITUDE, lat))
        return self._transformer.transform(lng, lat)

    def _fit_camera(self, bounds: Bounds, options: FitBoundsOptions) -> tuple[list[float], float]:
        x_min, y_min = self._project(bounds.west, bounds.south)
        x_max, y_max = self._project(bounds.east, bounds.north)

        padding = options.padding
        free_width = max(1, self.viewport_width - padding.get("left", 0) - padding.get("right", 0))
        free_height = max(1, self.viewport_height - padding.get("top", 0) - padding.get("bottom", 0))

        zooms = [options.max_zoom]
        if x_max > x_min:
            zooms.append(math.log2(EARTH_CIRCUMFERENCE_M * free_width / (TILE_SIZE_PX * (x_max - x_min))))
        if y_max > y_min:
            zooms.append(math.log2(EARTH_CIRCUMFERENCE_M * free_height / (TILE_SIZE_PX * (y_max - y_min))))
        zoom = max(0.0, min(zooms))

        center_lng, center_lat = self._inverse.transform((x_min + x_max) / 2, (y_min + y_max) / 2)
        return [round(center_lng, 6), round(center_lat, 6)], round(zoom, 2)

    def to_view_data(self) -> MapViewData:
        if self.config is None:
            raise RuntimeError("Map was never loaded")
        markers = [
            MapMarkerData(
                marker_id=element.marker_id,
                title=element.title,
                price_label=element.price_label,
                location_label=element.location_label,
                coords=coordinate.as_lng_lat(),
                color=element.style.background_color,
                hover_color=map_config.MARKER_HOVER_COLOR,
                size=element.style.size,
                popup_html=element.popup_html,
            )
            for coordinate, element in self.markers.values()
        ]
        return MapViewData(
            style=self.config.style,
            center=list(self.config.center),
            zoom=self.config.zoom,
            markers=markers,
            viewport=self.viewport,
        )
