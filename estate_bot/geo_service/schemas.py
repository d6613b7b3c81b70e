from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Coordinate(BaseModel):
    """
    A WGS 84 point.

    Immutable once attached to a suggestion, a selection or a marker.
    """

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(ge=-180, le=180, description="Longitude in degrees")

    @classmethod
    def from_lng_lat(cls, center: list[float]) -> "Coordinate":
        """Builds a coordinate from a provider `center` pair, which is [lng, lat]."""
        return cls(latitude=center[1], longitude=center[0])

    def as_lng_lat(self) -> list[float]:
        return [self.longitude, self.latitude]

    def as_label(self) -> str:
        """Address stand-in used when a coordinate cannot be labelled."""
        return f"{self.latitude:.6f}, {self.longitude:.6f}"


class GeocodingFeature(BaseModel):
    """One entry of the provider's `features` array."""

    center: list[float] = Field(min_length=2, max_length=2, description="[lng, lat]")
    place_name: str = Field(description="Full human readable address")
    text: str = Field("", description="Short name of the place")
    context: Optional[list[dict[str, Any]]] = None

    @field_validator("center")
    @classmethod
    def center_in_range(cls, value: list[float]) -> list[float]:
        lng, lat = value
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            raise ValueError(f"center out of range: {value}")
        return value


class LocationSuggestion(BaseModel):
    """Autocomplete entry. Lives only inside the open suggestion list."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    display_label: str
    short_label: str

    @classmethod
    def from_feature(cls, feature: GeocodingFeature) -> "LocationSuggestion":
        return cls(
            coordinate=Coordinate.from_lng_lat(feature.center),
            display_label=feature.place_name,
            short_label=feature.text or feature.place_name,
        )


class SelectedLocation(BaseModel):
    """The resolved, user-confirmed location."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    address: str


__all__ = [
    "Coordinate",
    "GeocodingFeature",
    "LocationSuggestion",
    "SelectedLocation",
]
