from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from services.price_alerts.app.clients import (
    CatalogItem,
    MarketDataError,
    WarframeMarketClient,
    WarframeStatusClient,
)
from services.price_alerts.app.main import create_app
from services.price_alerts.app.status import format_time_left, summarise_world_state
from services.price_alerts.tests.utils import FakeMarketClient, FakeStatusClient, buy, sell

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def market_client() -> FakeMarketClient:
    return FakeMarketClient(
        books={"serration": [*buy(9, 11), *sell(14, 12)]},
        catalog=[
            CatalogItem(id="1", slug="serration", name="Serration", thumb="items/serration.png"),
            CatalogItem(id="2", slug="amalgam_serration", name="Amalgam Serration"),
        ],
    )


def test_list_catalog_items(client: TestClient) -> None:
    response = client.get("/search/items")

    assert response.status_code == 200
    assert response.json() == [
        {"url_name": "serration", "item_name": "Serration"},
        {"url_name": "amalgam_serration", "item_name": "Amalgam Serration"},
    ]


def test_list_catalog_items_upstream_failure(
    client: TestClient, market_client: FakeMarketClient
) -> None:
    market_client.catalog_error = MarketDataError("catalog down")

    response = client.get("/search/items")

    assert response.status_code == 502


def test_search_returns_details_and_ranked_orders(client: TestClient) -> None:
    response = client.get("/search", params={"modName": "serration"})

    assert response.status_code == 200
    body = response.json()
    assert body["modDetails"]["item_name"] == "Serration"
    assert body["modDetails"]["url_name"] == "serration"
    assert body["modDetails"]["thumb"] == "items/serration.png"
    assert body["modDetails"]["trading_tax"] == 2000
    assert [(order["order_type"], order["platinum"]) for order in body["orders"]] == [
        ("sell", 12),
        ("sell", 14),
        ("buy", 11),
        ("buy", 9),
    ]
    assert body["orders"][0]["user"]["ingame_name"] == "seller1"


def test_search_requires_exact_name(client: TestClient) -> None:
    response = client.get("/search", params={"modName": "serr"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Item not found"


def test_search_requires_mod_name(client: TestClient) -> None:
    assert client.get("/search").status_code == 400
    assert client.get("/search", params={"modName": "  "}).status_code == 400


def test_search_upstream_failure(client: TestClient, market_client: FakeMarketClient) -> None:
    market_client.failing.add("serration")

    response = client.get("/search", params={"modName": "Serration"})

    assert response.status_code == 502


@pytest.mark.parametrize(
    "order",
    [
        {"type": "sell", "platinum": "NaN", "quantity": 1, "user": {"ingameName": "Tenno"}},
        {"type": "sell", "platinum": "Infinity", "quantity": 1, "user": {"ingameName": "Tenno"}},
        {"type": "sell", "platinum": 12, "quantity": "several", "user": {"ingameName": "Tenno"}},
    ],
)
def test_search_reports_malformed_order_book_as_bad_gateway(
    settings, in_memory_session_factory, status_client: FakeStatusClient, order: dict
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v2/items":
            return httpx.Response(
                200,
                json={"data": [{"slug": "serration", "i18n": {"en": {"name": "Serration"}}}]},
            )
        if request.url.path == "/v2/item/serration":
            return httpx.Response(200, json={"data": {"slug": "serration", "i18n": "oops"}})
        return httpx.Response(
            200, json={"data": [order, {"type": "buy", "platinum": 9, "user": "Buyer"}]}
        )

    base_url = "https://api.warframe.market/v2/"
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)
    app = create_app(
        settings=settings,
        session_factory=in_memory_session_factory,
        market_client=WarframeMarketClient(base_url, client=http_client, requests_per_second=None),
        status_client=status_client,
        start_background_tasks=False,
    )

    response = TestClient(app).get("/search", params={"modName": "Serration"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to fetch market data"


    assert response.status_code == 502


def test_game_status(client: TestClient, status_client: FakeStatusClient) -> None:
    status_client.state = {
        "cetusCycle": {"isDay": True, "expiry": "2099-01-01T00:00:00.000Z"},
        "vallisCycle": {"state": "cold", "isWarm": False, "expiry": "2099-01-01T00:00:00.000Z"},
        "voidTrader": {"active": False, "activation": "2099-01-01T00:00:00.000Z"},
    }

    response = client.get("/gamestatus")

    assert response.status_code == 200
    body = response.json()
    assert body["cetusCycle"]["state"] == "Day"
    assert body["vallisCycle"]["state"] == "Cold"
    assert body["voidTrader"]["location"] == "Away"
    assert body["voidTrader"]["character"] == "Baro Ki'Teer"


def test_game_status_upstream_failure(client: TestClient, status_client: FakeStatusClient) -> None:
    status_client.error = MarketDataError("status down")

    response = client.get("/gamestatus")

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to fetch game status"


def test_current_user(client: TestClient, auth_headers) -> None:
    response = client.get(
        "/user/me", headers=auth_headers("user-7", email="tenno@example.com", username="Tenno")
    )

    assert response.status_code == 200
    assert response.json() == {
        "userId": "user-7",
        "email": "tenno@example.com",
        "userName": "Tenno",
        "isAuthenticated": True,
    }


def test_current_user_requires_token(client: TestClient) -> None:
    assert client.get("/user/me").status_code == 401


def test_auth_check(client: TestClient, auth_headers) -> None:
    assert client.get("/user/check").json() == {"isAuthenticated": False}
    assert client.get("/user/check", headers={"Authorization": "Bearer junk"}).json() == {
        "isAuthenticated": False
    }
    assert client.get("/user/check", headers=auth_headers()).json() == {"isAuthenticated": True}


@pytest.mark.parametrize(
    ("expiry", "expected"),
    [
        ("2026-03-01T12:04:05Z", "4m 5s"),
        ("2026-03-01T14:30:00Z", "2h 30m"),
        ("2026-03-03T13:00:00+00:00", "49h 0m"),
        ("2026-03-01T11:59:00Z", "Just changed"),
        ("not a date", None),
        (None, None),
    ],
)
def test_format_time_left(expiry: str | None, expected: str | None) -> None:
    assert format_time_left(expiry, NOW) == expected


def test_summarise_world_state_with_active_trader() -> None:
    status = summarise_world_state(
        {
            "cetusCycle": {"isDay": False, "expiry": "2026-03-01T12:10:00Z"},
            "vallisCycle": {"state": "warm", "expiry": "bogus"},
            "voidTrader": {
                "active": True,
                "character": "Baro Ki'Teer",
                "location": "Strata Relay (Earth)",
                "expiry": "2026-03-02T12:00:00Z",
            },
        },
        now=NOW,
    )

    assert status.cetus_cycle.state == "Night"
    assert status.cetus_cycle.time_left == "10m 0s"
    assert status.vallis_cycle.state == "Warm"
    assert status.vallis_cycle.time_left == "Warm Period"
    assert status.void_trader.active is True
    assert status.void_trader.location == "Strata Relay (Earth)"
    assert status.void_trader.time_left == "24h 0m"


def test_summarise_world_state_tolerates_missing_sections() -> None:
    status = summarise_world_state({}, now=NOW)

    assert status.cetus_cycle is None
    assert status.vallis_cycle is None
    assert status.void_trader is None


@respx.mock
def test_status_client_fetches_world_state() -> None:
    route = respx.get(url__regex=r"https://api\.warframestat\.us/pc/?$").mock(
        return_value=httpx.Response(200, json={"cetusCycle": {"isDay": True}})
    )

    async def _run():
        client = WarframeStatusClient("https://api.warframestat.us/pc", user_agent="tests")
        try:
            return await client.fetch_world_state()
        finally:
            await client.aclose()

    state = asyncio.run(_run())

    assert route.called
    assert route.calls.last.request.headers["User-Agent"] == "tests"
    assert state == {"cetusCycle": {"isDay": True}}


@respx.mock
def test_status_client_wraps_upstream_errors() -> None:
    respx.get(url__regex=r"https://api\.warframestat\.us/pc/?$").mock(
        return_value=httpx.Response(503)
    )

    async def _run():
        client = WarframeStatusClient("https://api.warframestat.us/pc")
        try:
            await client.fetch_world_state()
        finally:
            await client.aclose()

    with pytest.raises(MarketDataError):
        asyncio.run(_run())
