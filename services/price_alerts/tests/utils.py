from __future__ import annotations

from decimal import Decimal
from typing import Any

from services.price_alerts.app.clients import (
    CatalogItem,
    ItemDetail,
    MarketDataError,
    MarketOrder,
    WarframeMarketClient,
    WarframeStatusClient,
)


def sell(*prices: int | str) -> list[MarketOrder]:
    return [
        MarketOrder(order_type="sell", platinum=Decimal(str(price)), seller=f"seller{index}")
        for index, price in enumerate(prices)
    ]


def buy(*prices: int | str) -> list[MarketOrder]:
    return [
        MarketOrder(order_type="buy", platinum=Decimal(str(price)), seller=f"buyer{index}")
        for index, price in enumerate(prices)
    ]


class FakeMarketClient(WarframeMarketClient):
    """In-memory stand-in for warframe.market keyed by item slug."""

    def __init__(
        self,
        books: dict[str, list[MarketOrder]] | None = None,
        catalog: list[CatalogItem] | None = None,
    ) -> None:
        self._own_client = False
        self.books: dict[str, list[MarketOrder]] = dict(books or {})
        self.catalog: list[CatalogItem] = list(catalog or [])
        self.failing: set[str] = set()
        self.catalog_error: Exception | None = None
        self.order_requests: list[str] = []

    async def list_items(self) -> list[CatalogItem]:
        if self.catalog_error is not None:
            raise self.catalog_error
        return list(self.catalog)

    async def get_item(self, slug: str) -> ItemDetail:
        item = next((entry for entry in self.catalog if entry.slug == slug), None)
        if item is None:
            raise MarketDataError(f"unknown item {slug}")
        return ItemDetail(
            slug=slug,
            name=item.name,
            description=f"{item.name} description",
            icon=None,
            thumb=item.thumb,
            trading_tax=2000,
            wiki_link=None,
        )

    async def list_orders(self, slug: str) -> list[MarketOrder]:
        self.order_requests.append(slug)
        if slug in self.failing:
            raise MarketDataError(f"orders for {slug} unavailable")
        if slug not in self.books:
            raise MarketDataError(f"Request to orders/item/{slug} failed with status 404")
        return list(self.books[slug])

    async def aclose(self) -> None:  # pragma: no cover - interface requirement
        return None


class FakeStatusClient(WarframeStatusClient):
    def __init__(self, state: dict[str, Any] | None = None) -> None:
        self._own_client = False
        self.state = state
        self.error: Exception | None = None

    async def fetch_world_state(self) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        return dict(self.state or {})

    async def aclose(self) -> None:  # pragma: no cover - interface requirement
        return None
