import httpx
import pytest

from helpers import feature, make_client
from estate_bot.geo_service.errors import CredentialError, ProviderError
from estate_bot.geo_service.mapbox_client import CircuitState, is_valid_mapbox_token
from estate_bot.geo_service.schemas import Coordinate


@pytest.mark.parametrize(
    "token, expected",
    [
        ("pk.eyJ1Ijoi", True),
        ("", False),
        (None, False),
        ("sk.secret", False),
        ("pk.example-token", False),
    ],
)
def test_is_valid_mapbox_token(token, expected):
    assert is_valid_mapbox_token(token) is expected


@pytest.mark.asyncio
async def test_forward_sends_query_and_parses_features():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "features": [
                    feature("Bandra West, Mumbai, India", 72.8295, 19.0596),
                    feature("Bandra East, Mumbai, India", 72.8479, 19.0607),
                ]
            },
        )

    client = make_client(handler)
    features = await client.forward("Bandra Mumbai", limit=5)
    await client.close()

    assert [f.place_name for f in features] == [
        "Bandra West, Mumbai, India",
        "Bandra East, Mumbai, India",
    ]
    request = seen[0]
    assert request.url.path == "/geocoding/v5/mapbox.places/Bandra Mumbai.json"
    assert "Bandra%20Mumbai.json" in str(request.url)
    assert request.url.params["limit"] == "5"
    assert request.url.params["access_token"] == "pk.test-token"
    assert "address" in request.url.params["types"]


@pytest.mark.asyncio
async def test_forward_without_types_omits_the_parameter():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"features": []})

    client = make_client(handler)
    await client.forward("Koramangala", limit=1, types=None)
    await client.close()

    assert "types" not in seen[0].url.params


@pytest.mark.asyncio
async def test_reverse_puts_lng_first_in_path():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"features": [feature("Whitefield, Bengaluru", 77.7499, 12.9698)]})

    client = make_client(handler)
    features = await client.reverse(Coordinate(latitude=12.9698, longitude=77.7499))
    await client.close()

    assert features[0].place_name == "Whitefield, Bengaluru"
    assert seen[0].url.path == "/geocoding/v5/mapbox.places/77.7499,12.9698.json"


@pytest.mark.asyncio
async def test_non_2xx_is_no_result():
    client = make_client(lambda request: httpx.Response(401, json={"message": "Not Authorized"}))
    assert await client.forward("Mumbai") == []
    assert client.circuit_state is CircuitState.CLOSED
    await client.close()


@pytest.mark.asyncio
async def test_malformed_features_are_skipped():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "features": [
                    {"place_name": "no centre"},
                    {"center": [500, 10], "place_name": "out of range"},
                    feature("Powai, Mumbai", 72.9052, 19.1176),
                ]
            },
        )

    client = make_client(handler)
    features = await client.forward("Powai")
    await client.close()

    assert [f.place_name for f in features] == ["Powai, Mumbai"]


@pytest.mark.asyncio
async def test_invalid_token_fails_before_any_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"features": []})

    client = make_client(handler, token="")
    with pytest.raises(CredentialError):
        await client.forward("Mumbai")
    await client.close()

    assert calls == []


@pytest.mark.asyncio
async def test_circuit_opens_after_repeated_failures():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    for _ in range(2):
        with pytest.raises(ProviderError):
            await client.forward("Mumbai")
    assert client.circuit_state is CircuitState.OPEN

    with pytest.raises(ProviderError):
        await client.forward("Mumbai")
    await client.close()

    # The third call failed fast without reaching the transport
    assert len(calls) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content, headers",
    [
        (b'\x80\x81{"features": []}', {}),
        (b"<html>gateway</html>", {}),
        (b"not gzip", {"Content-Encoding": "gzip"}),
    ],
    ids=["not-utf8", "not-json", "bad-encoding"],
)
async def test_undecodable_body_is_a_provider_error(content, headers):
    client = make_client(lambda request: httpx.Response(200, content=content, headers=headers))
    with pytest.raises(ProviderError):
        await client.reverse(Coordinate(latitude=19.0596, longitude=72.8295))
    await client.close()


@pytest.mark.asyncio
async def test_repeated_server_errors_open_the_circuit():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, json={"message": "Service Unavailable"})

    client = make_client(handler)
    assert await client.forward("Mumbai") == []
    assert await client.forward("Mumbai") == []
    assert client.circuit_state is CircuitState.OPEN

    with pytest.raises(ProviderError):
        await client.forward("Mumbai")
    await client.close()

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_success_after_server_error_resets_the_count():
    answers = iter([503, 200, 503])

    def handler(request):
        return httpx.Response(next(answers), json={"features": []})

    client = make_client(handler)
    for _ in range(3):
        await client.forward("Mumbai")
    await client.close()

    assert client.circuit_state is CircuitState.CLOSED
