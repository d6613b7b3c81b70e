import asyncio

import httpx
import pytest

from helpers import feature, make_client
from estate_bot.geo_service.errors import (
    CredentialError,
    NoResultsError,
    PermissionDeniedError,
    UnavailableError,
)
from estate_bot.geo_service.location_resolver import Intent, LocationResolver
from estate_bot.geo_service.schemas import Coordinate


def query_of(request: httpx.Request) -> str:
    return request.url.path.rsplit("/", 1)[-1].removesuffix(".json")


class StubLocator:
    def __init__(self, coordinate=None, error=None):
        self.coordinate = coordinate
        self.error = error

    async def current_position(self) -> Coordinate:
        if self.error is not None:
            raise self.error
        return self.coordinate


@pytest.mark.asyncio
async def test_short_query_makes_no_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"features": []})

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    for query in ("", "m", "mu", "  mu  "):
        assert await resolver.search(query) == []

    assert calls == []
    assert resolver.suggestions == []


@pytest.mark.asyncio
async def test_rapid_typing_sends_only_the_last_query():
    calls = []

    def handler(request):
        calls.append(query_of(request))
        return httpx.Response(200, json={"features": [feature("Mumbai, Maharashtra, India", 72.8777, 19.076)]})

    resolver = LocationResolver(make_client(handler), debounce_seconds=0.05)
    results = await asyncio.gather(
        resolver.search("mum"),
        resolver.search("mumb"),
        resolver.search("mumba"),
        resolver.search("mumbai"),
    )

    assert calls == ["mumbai"]
    assert results[:3] == [None, None, None]
    assert [s.display_label for s in results[3]] == ["Mumbai, Maharashtra, India"]


@pytest.mark.asyncio
async def test_late_answer_of_an_older_query_is_discarded():
    release_first = asyncio.Event()

    async def handler(request):
        if query_of(request) == "mumbai":
            await release_first.wait()
            return httpx.Response(200, json={"features": [feature("Mumbai, India", 72.8777, 19.076)]})
        return httpx.Response(200, json={"features": [feature("Bengaluru, India", 77.5946, 12.9716)]})

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)

    first = asyncio.create_task(resolver.search("mumbai"))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(resolver.search("bengaluru"))
    await asyncio.sleep(0.01)
    release_first.set()

    assert await first is None
    latest = await second
    assert [s.display_label for s in latest] == ["Bengaluru, India"]
    assert [s.display_label for s in resolver.suggestions] == ["Bengaluru, India"]


@pytest.mark.asyncio
async def test_provider_failure_degrades_to_empty_suggestions():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    assert await resolver.search("Andheri") == []
    assert resolver.suggestions == []


@pytest.mark.asyncio
async def test_missing_credential_is_reported_without_requests():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"features": []})

    resolver = LocationResolver(make_client(handler, token=""), debounce_seconds=0)
    assert await resolver.search("Andheri") == []
    assert isinstance(resolver.last_error, CredentialError)
    assert calls == []


@pytest.mark.asyncio
async def test_selecting_a_suggestion_keeps_its_coordinate():
    def handler(request):
        return httpx.Response(
            200, json={"features": [feature("Bandra West, Mumbai, India", 72.829541, 19.059631)]}
        )

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    suggestions = await resolver.search("Bandra")
    selection = resolver.select_suggestion(suggestions[0])

    assert selection.coordinate == suggestions[0].coordinate
    assert selection.coordinate.latitude == 19.059631
    assert selection.coordinate.longitude == 72.829541
    assert selection.address == "Bandra West, Mumbai, India"
    assert resolver.suggestions == []


@pytest.mark.asyncio
async def test_resolve_forward_picks_the_top_result():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "features": [
                    feature("Whitefield, Bengaluru, India", 77.7499, 12.9698),
                    feature("Whitefield, Manchester, UK", -2.2926, 53.5516),
                ]
            },
        )

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    selection = await resolver.resolve_forward("Whitefield")

    assert selection.address == "Whitefield, Bengaluru, India"
    assert selection.coordinate == Coordinate(latitude=12.9698, longitude=77.7499)
    assert seen[0].url.params["limit"] == "1"


@pytest.mark.asyncio
async def test_resolve_forward_without_matches_keeps_previous_selection():
    answers = iter(
        [
            {"features": [feature("Powai, Mumbai, India", 72.9052, 19.1176)]},
            {"features": []},
        ]
    )

    def handler(request):
        return httpx.Response(200, json=next(answers))

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    previous = await resolver.resolve_forward("Powai")

    with pytest.raises(NoResultsError) as exc_info:
        await resolver.resolve_forward("Nowhere at all")

    assert exc_info.value.query == "Nowhere at all"
    assert resolver.selected == previous


@pytest.mark.asyncio
async def test_resolve_reverse_falls_back_to_coordinates_on_provider_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    selection = await resolver.resolve_reverse(Coordinate(latitude=19.0596, longitude=72.8295))

    assert selection.address == "19.059600, 72.829500"
    assert resolver.selected == selection


@pytest.mark.asyncio
async def test_resolve_reverse_falls_back_on_empty_answer():
    resolver = LocationResolver(
        make_client(lambda request: httpx.Response(200, json={"features": []})), debounce_seconds=0
    )
    selection = await resolver.resolve_reverse(Coordinate(latitude=-33.8688, longitude=151.2093))
    assert selection.address == "-33.868800, 151.209300"


@pytest.mark.asyncio
async def test_resolve_reverse_without_credential_still_labels():
    resolver = LocationResolver(
        make_client(lambda request: httpx.Response(200, json={"features": []}), token=""),
        debounce_seconds=0,
    )
    selection = await resolver.resolve_reverse(Coordinate(latitude=0, longitude=0))
    assert selection.address == "0.000000, 0.000000"


@pytest.mark.asyncio
async def test_locate_device_reverse_geocodes_the_position():
    def handler(request):
        return httpx.Response(200, json={"features": [feature("Indiranagar, Bengaluru", 77.6408, 12.9784)]})

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    position = Coordinate(latitude=12.9784, longitude=77.6408)
    selection = await resolver.locate_device(StubLocator(coordinate=position))

    assert selection.coordinate == position
    assert selection.address == "Indiranagar, Bengaluru"
    assert resolver.current_intent is Intent.CURRENT_LOCATION


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [PermissionDeniedError("denied"), UnavailableError("no gps")])
async def test_device_failures_surface_once(error):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"features": []})

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    with pytest.raises(type(error)):
        await resolver.use_current_device(StubLocator(error=error))

    assert calls == []
    assert resolver.selected is None


@pytest.mark.asyncio
async def test_map_click_supersedes_pending_search():
    calls = []

    def handler(request):
        calls.append(query_of(request))
        return httpx.Response(200, json={"features": []})

    resolver = LocationResolver(make_client(handler), debounce_seconds=0.05)
    pending = asyncio.create_task(resolver.search("Kolkata"))
    await asyncio.sleep(0)
    await resolver.resolve_reverse(Coordinate(latitude=22.5726, longitude=88.3639))

    assert await pending is None
    assert calls == ["88.3639,22.5726"]


@pytest.mark.asyncio
async def test_clear_drops_everything():
    def handler(request):
        return httpx.Response(200, json={"features": [feature("Goa, India", 74.124, 15.2993)]})

    resolver = LocationResolver(make_client(handler), debounce_seconds=0)
    suggestions = await resolver.search("Goa beach")
    resolver.select_suggestion(suggestions[0])
    resolver.clear()

    assert resolver.query == ""
    assert resolver.suggestions == []
    assert resolver.selected is None


def undecodable(request):
    return httpx.Response(200, content=b'\x80\x81{"features": []}')


@pytest.mark.asyncio
async def test_resolve_reverse_survives_an_undecodable_answer():
    resolver = LocationResolver(make_client(undecodable), debounce_seconds=0)
    selection = await resolver.resolve_reverse(Coordinate(latitude=19.0596, longitude=72.8295))
    assert selection.address == "19.059600, 72.829500"


@pytest.mark.asyncio
async def test_search_with_an_undecodable_answer_is_empty():
    resolver = LocationResolver(make_client(undecodable), debounce_seconds=0)
    assert await resolver.search("Andheri") == []
    assert resolver.suggestions == []
    assert resolver.last_error is not None
