import pytest

from helpers import VALID_TOKEN
from estate_bot.config import map_config
from estate_bot.geo_service.errors import CredentialError
from estate_bot.geo_service.schemas import Coordinate
from estate_bot.map_service.marker_controller import (
    MapControllerError,
    MapInitError,
    MapMarkerController,
    MapState,
    PropertyMarker,
)
from estate_bot.map_service.renderer import Bounds, SnapshotMapRenderer


def marker(marker_id: str, lat: float, lng: float, title: str = "Flat") -> PropertyMarker:
    return PropertyMarker(
        id=marker_id,
        title=title,
        price_label="₹3.5 Cr",
        location_label="Somewhere",
        coordinate=Coordinate(latitude=lat, longitude=lng),
    )


MUMBAI = (19.0596, 72.8295)
BENGALURU = (12.9698, 77.7499)


class FailingRenderer(SnapshotMapRenderer):
    async def load(self, config):
        raise ConnectionError("style could not be fetched")


async def ready_controller(**kwargs):
    renderer = SnapshotMapRenderer()
    controller = MapMarkerController(renderer, **kwargs)
    await controller.initialize(VALID_TOKEN)
    return controller, renderer


@pytest.mark.asyncio
async def test_sync_renders_markers_and_fits_both_coordinates():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI), marker("2", *BENGALURU)])

    assert controller.state is MapState.READY
    assert controller.live_marker_count == 2
    assert len(renderer.markers) == 2
    assert renderer.fit_bounds_calls == 1

    (west, south), (east, north) = renderer.viewport.bounds
    bounds = Bounds(west=west, south=south, east=east, north=north)
    for lat, lng in (MUMBAI, BENGALURU):
        assert bounds.contains(Coordinate(latitude=lat, longitude=lng))

    center_lng, center_lat = renderer.viewport.center
    assert BENGALURU[0] < center_lat < MUMBAI[0]
    assert MUMBAI[1] < center_lng < BENGALURU[1]
    assert 0 < renderer.viewport.zoom < map_config.MAX_ZOOM
    assert renderer.viewport.padding == map_config.FIT_BOUNDS_PADDING


@pytest.mark.asyncio
async def test_single_marker_zoom_is_capped():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI)])

    assert renderer.viewport.zoom == map_config.MAX_ZOOM
    assert renderer.viewport.center == pytest.approx([MUMBAI[1], MUMBAI[0]], abs=1e-5)


@pytest.mark.asyncio
async def test_resync_replaces_every_marker_and_listener():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI), marker("2", *BENGALURU)])
    old_elements = [element for _, element in renderer.markers.values()]

    controller.sync([marker("3", 28.6139, 77.2090)])

    assert controller.live_marker_count == 1
    assert [m.id for m in controller.markers] == ["3"]
    assert all(element.listener_count == 0 for element in old_elements)
    assert controller.live_listener_count == 3


@pytest.mark.asyncio
async def test_empty_sync_tears_down_without_fitting():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI)])
    controller.sync([])

    assert controller.live_marker_count == 0
    assert renderer.markers == {}
    assert renderer.fit_bounds_calls == 1


@pytest.mark.asyncio
async def test_duplicate_ids_are_rendered_once():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI), marker("1", *BENGALURU)])
    assert controller.live_marker_count == 1


@pytest.mark.asyncio
async def test_click_dispatches_the_property():
    clicked = []
    controller, _ = await ready_controller(on_marker_click=clicked.append)
    controller.sync([marker("1", *MUMBAI, title="Bandra"), marker("2", *BENGALURU)])

    controller.dispatch("1", "click")

    assert [m.title for m in clicked] == ["Bandra"]


@pytest.mark.asyncio
async def test_hover_switches_colors():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI)])
    (_, element), = renderer.markers.values()

    controller.dispatch("1", "mouseenter")
    assert element.style.background_color == map_config.MARKER_HOVER_COLOR
    assert controller.markers[0].hover_active

    controller.dispatch("1", "mouseleave")
    assert element.style.background_color == map_config.MARKER_COLOR
    assert not controller.markers[0].hover_active


@pytest.mark.asyncio
async def test_hover_leaves_the_callers_marker_untouched():
    controller, _ = await ready_controller()
    original = marker("1", *MUMBAI)
    controller.sync([original])

    controller.dispatch("1", "mouseenter")

    assert controller.markers[0].hover_active
    assert controller.markers[0] is not original
    assert not original.hover_active

    # The same list can be synced again without stale hover state
    controller.sync([original])
    assert not controller.markers[0].hover_active


@pytest.mark.asyncio
async def test_popup_content_is_escaped():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI, title="<script>x</script>")])
    (_, element), = renderer.markers.values()

    assert "<script>" not in element.popup_html
    assert "&lt;script&gt;" in element.popup_html


@pytest.mark.asyncio
async def test_invalid_credential_puts_map_in_error():
    controller = MapMarkerController(SnapshotMapRenderer())
    with pytest.raises(CredentialError):
        await controller.initialize("")

    assert controller.state is MapState.ERROR
    with pytest.raises(MapControllerError):
        controller.sync([marker("1", *MUMBAI)])
    with pytest.raises(MapControllerError):
        await controller.initialize(VALID_TOKEN)


@pytest.mark.asyncio
async def test_renderer_failure_puts_map_in_error():
    controller = MapMarkerController(FailingRenderer())
    with pytest.raises(MapInitError):
        await controller.initialize(VALID_TOKEN)
    assert controller.state is MapState.ERROR


def test_sync_before_initialise_is_refused():
    controller = MapMarkerController(SnapshotMapRenderer())
    with pytest.raises(MapControllerError):
        controller.sync([marker("1", *MUMBAI)])


@pytest.mark.asyncio
async def test_dispose_removes_markers_and_map():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI), marker("2", *BENGALURU)])
    elements = [element for _, element in renderer.markers.values()]

    controller.dispose()

    assert controller.state is MapState.DISPOSED
    assert controller.live_marker_count == 0
    assert renderer.removed
    assert all(element.listener_count == 0 for element in elements)


@pytest.mark.asyncio
async def test_view_data_carries_markers_and_viewport():
    controller, renderer = await ready_controller()
    controller.sync([marker("1", *MUMBAI), marker("2", *BENGALURU)])

    view = renderer.to_view_data()

    assert view.style == map_config.DEFAULT_STYLE
    assert sorted(m.marker_id for m in view.markers) == ["1", "2"]
    assert view.markers[0].coords in ([MUMBAI[1], MUMBAI[0]], [BENGALURU[1], BENGALURU[0]])
    assert view.viewport is not None
