from collections.abc import Callable
from typing import Any

import httpx
import pytest

from coinscope.client import MarketDataClient
from coinscope.config import APISettings
from coinscope.errors import MalformedPayload, NetworkFailure

BASE_URL = "https://api.test/api/v3"

MARKETS_PAYLOAD = [
    {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "image": "https://assets.example/btc.png",
        "current_price": 64000.0,
        "market_cap": 1.26e12,
        "market_cap_rank": 1,
        "total_volume": 3.0e10,
        "price_change_percentage_24h": 2.1,
        "circulating_supply": 19_700_000.0,
        "last_updated": "2024-05-01T12:00:00.000Z",
    },
    {
        "id": "ethereum",
        "symbol": "eth",
        "name": "Ethereum",
        "image": "https://assets.example/eth.png",
        "current_price": 3100.0,
        "market_cap": 3.7e11,
        "market_cap_rank": 2,
        "total_volume": 1.5e10,
        "price_change_percentage_24h": -0.8,
        "circulating_supply": 120_000_000.0,
        "last_updated": "2024-05-01T12:00:00.000Z",
    },
]

CHART_PAYLOAD = {
    "prices": [[1714521600000, 63000.0], [1714525200000, 63400.0]],
    "market_caps": [],
    "total_volumes": [],
}


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> MarketDataClient:
    """Helper to build a client whose HTTP layer is served by ``handler``."""
    api = APISettings(base_url=BASE_URL, vs_currency="usd", page_size=2)
    http_client = httpx.AsyncClient(
        base_url=api.base_url, transport=httpx.MockTransport(handler)
    )
    return MarketDataClient(http_client, api)


@pytest.mark.asyncio
async def test_get_assets() -> None:
    """Tests the markets request and the mapped, ordered result."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=MARKETS_PAYLOAD)

    client = make_client(handler)
    try:
        assets = await client.get_assets()
    finally:
        await client.http_client.aclose()

    assert [a.id for a in assets] == ["bitcoin", "ethereum"]
    assert assets[1].symbol == "ETH"
    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/api/v3/coins/markets"
    assert request.url.params["vs_currency"] == "usd"
    assert request.url.params["order"] == "market_cap_desc"
    assert request.url.params["per_page"] == "2"
    assert request.url.params["page"] == "1"


@pytest.mark.asyncio
@pytest.mark.parametrize(("days", "expected"), [(None, "7"), (30, "30")])
async def test_get_price_history(days: int | None, expected: str) -> None:
    """Tests the market-chart request for the configured and explicit windows."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=CHART_PAYLOAD)

    client = make_client(handler)
    try:
        points = await client.get_price_history("bitcoin", days=days)
    finally:
        await client.http_client.aclose()

    assert [p.price for p in points] == [63000.0, 63400.0]
    assert seen[0].url.path == "/api/v3/coins/bitcoin/market_chart"
    assert seen[0].url.params["days"] == expected
    assert seen[0].url.params["vs_currency"] == "usd"


@pytest.mark.asyncio
async def test_asset_id_is_quoted_into_a_single_path_segment() -> None:
    """Tests that an id containing URL syntax cannot escape its path segment."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=CHART_PAYLOAD)

    client = make_client(handler)
    try:
        await client.get_price_history("wrapped/btc?x=1")
    finally:
        await client.http_client.aclose()

    raw_path = seen[0].url.raw_path.decode("ascii")
    assert raw_path.startswith("/api/v3/coins/wrapped%2Fbtc%3Fx%3D1/market_chart?")
    assert "x" not in seen[0].url.params


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [404, 429, 500])
async def test_http_errors_become_network_failures(status_code: int) -> None:
    client = make_client(lambda request: httpx.Response(status_code))
    try:
        with pytest.raises(NetworkFailure) as exc_info:
            await client.get_assets()
    finally:
        await client.http_client.aclose()

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_transport_errors_become_network_failures() -> None:
    """Tests that a connection problem carries no status code."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    try:
        with pytest.raises(NetworkFailure) as exc_info:
            await client.get_price_history("bitcoin")
    finally:
        await client.http_client.aclose()

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "call"),
    [
        (httpx.Response(200, content=b"<html>busy</html>"), "assets"),
        (httpx.Response(200, json={"status": {"error_code": 1}}), "assets"),
        (httpx.Response(200, json={"prices": [[1, "x"]]}), "history"),
    ],
)
async def test_bad_bodies_become_malformed_payloads(
    response: httpx.Response, call: str
) -> None:
    client = make_client(lambda request: response)
    calls: dict[str, Any] = {
        "assets": client.get_assets,
        "history": lambda: client.get_price_history("bitcoin"),
    }
    try:
        with pytest.raises(MalformedPayload):
            await calls[call]()
    finally:
        await client.http_client.aclose()


@pytest.mark.asyncio
async def test_create_http_client() -> None:
    """Tests the shared client's base URL and timeout."""
    api = APISettings(base_url=BASE_URL, request_timeout_s=5.0)
    http_client = MarketDataClient.create_http_client(api)
    try:
        assert str(http_client.base_url) == f"{BASE_URL}/"
        assert http_client.timeout.read == 5.0
        assert http_client.headers["Accept"] == "application/json"
    finally:
        await http_client.aclose()
