"""
Response schemas of the map API.

The bot writes the map payload with the same models, so they are shared
instead of redeclared here.
"""

from estate_bot.schemas import MapMarkerData, MapViewData, MapViewport


__all__ = [
    "MapMarkerData",
    "MapViewData",
    "MapViewport",
]
