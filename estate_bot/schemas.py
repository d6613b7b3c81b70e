from typing import Optional

from pydantic import BaseModel


class MapMarkerData(BaseModel):
    """One property pin as the web map draws it."""

    marker_id: str
    title: str
    price_label: str
    location_label: str
    coords: list[float]  # [longitude, latitude]
    color: str
    hover_color: str
    size: int
    popup_html: Optional[str] = None


class MapViewport(BaseModel):
    """Bounds the map has to fit, plus the fitted camera."""

    bounds: list[list[float]]  # [[west, south], [east, north]]
    padding: dict[str, int]
    max_zoom: float
    duration_ms: int
    center: list[float]  # [longitude, latitude]
    zoom: float


class MapViewData(BaseModel):
    """Everything the map page needs to render a set of properties."""

    style: str
    center: list[float]  # [longitude, latitude]
    zoom: float
    markers: list[MapMarkerData]
    viewport: Optional[MapViewport] = None
