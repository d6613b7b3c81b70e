# Map style and marker constants shared by the marker controller and the frontend payload.

MAP_STYLES = {
    "streets": "mapbox://styles/mapbox/streets-v12",
    "light": "mapbox://styles/mapbox/light-v11",
    "dark": "mapbox://styles/mapbox/dark-v11",
    "satellite": "mapbox://styles/mapbox/satellite-v9",
    "outdoors": "mapbox://styles/mapbox/outdoors-v12",
}
DEFAULT_STYLE = MAP_STYLES["streets"]

# [lng, lat]
DEFAULT_CENTER = (-98.5795, 39.8283)
DEFAULT_ZOOM = 3
MAX_ZOOM = 12

# Viewport used when the fitted zoom is computed on the server side
VIEWPORT_WIDTH_PX = 1024
VIEWPORT_HEIGHT_PX = 500

FIT_BOUNDS_PADDING = {"top": 50, "bottom": 50, "left": 50, "right": 50}
FIT_BOUNDS_DURATION_MS = 1000

MARKER_SIZE = 30
MARKER_COLOR = "#9DC183"
MARKER_HOVER_COLOR = "#8AB172"
MARKER_BORDER_COLOR = "white"
MARKER_BORDER_WIDTH = 3
MARKER_HOVER_SCALE = 1.2
