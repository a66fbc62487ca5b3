"""HTTP clients for the external Warframe data sources."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class MarketDataError(RuntimeError):
    """Raised when an external source answers with an error or an unusable payload."""


@dataclass(slots=True, frozen=True)
class CatalogItem:
    id: str | None
    slug: str
    name: str
    thumb: str | None = None


@dataclass(slots=True, frozen=True)
class MarketOrder:
    order_type: str
    platinum: Decimal
    quantity: int = 1
    seller: str | None = None
    seller_status: str | None = None
    visible: bool = True

    @property
    def is_sell(self) -> bool:
        return self.order_type.lower() == "sell"


@dataclass(slots=True, frozen=True)
class ItemDetail:
    slug: str
    name: str | None
    description: str | None
    icon: str | None
    thumb: str | None
    trading_tax: int
    wiki_link: str | None


class RequestThrottle:
    """Space outgoing requests so at most ``rate`` of them start each second."""

    def __init__(self, rate: float) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self._min_interval = 1.0 / rate
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            wait_for = self._next_slot - now
            self._next_slot = max(now, self._next_slot) + self._min_interval
        if wait_for > 0:
            await asyncio.sleep(wait_for)


class _JsonClient:
    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        user_agent: str | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if user_agent:
            headers["User-Agent"] = user_agent
        self._own_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)

    async def _get_json(self, path: str) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            raise MarketDataError(f"Network error while fetching {path}: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise MarketDataError(f"Request to {path} failed with status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise MarketDataError(f"Response from {path} is not valid JSON") from exc

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()


class WarframeMarketClient(_JsonClient):
    """Client for the warframe.market v2 API (catalog, item details, order books)."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 10.0,
        user_agent: str | None = None,
        requests_per_second: float | None = 3.0,
    ) -> None:
        super().__init__(base_url, client=client, timeout=timeout, user_agent=user_agent)
        self._throttle = RequestThrottle(requests_per_second) if requests_per_second else None

    async def _get_market_json(self, path: str) -> Any:
        if self._throttle is not None:
            await self._throttle.acquire()
        return await self._get_json(path)

    async def list_items(self) -> list[CatalogItem]:
        payload = await self._get_market_json("items")
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise MarketDataError("Item catalog response has no data list")
        items: list[CatalogItem] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            english = _english(entry)
            slug = entry.get("slug") or entry.get("url_name")
            name = english.get("name") or entry.get("item_name")
            if not isinstance(slug, str) or not isinstance(name, str) or not slug or not name:
                continue
            items.append(
                CatalogItem(id=entry.get("id"), slug=slug, name=name, thumb=english.get("thumb"))
            )
        logger.debug("Loaded %d catalog items from warframe.market", len(items))
        return items

    async def get_item(self, slug: str) -> ItemDetail:
        if not slug or not slug.strip():
            raise ValueError("Item slug cannot be empty")
        payload = await self._get_market_json(f"item/{slug}")
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise MarketDataError(f"Item detail response for '{slug}' has no data object")
        english = _english(data)
        try:
            trading_tax = int(data.get("tradingTax") or 0)
        except (TypeError, ValueError) as exc:
            raise MarketDataError(f"Item detail for '{slug}' has an invalid trading tax") from exc
        return ItemDetail(
            slug=data.get("slug") or slug,
            name=english.get("name"),
            description=english.get("description"),
            icon=english.get("icon"),
            thumb=english.get("thumb"),
            trading_tax=trading_tax,
            wiki_link=english.get("wikiLink"),
        )

    async def list_orders(self, slug: str) -> list[MarketOrder]:
        if not slug or not slug.strip():
            raise ValueError("Item slug cannot be empty")
        payload = await self._get_market_json(f"orders/item/{slug}")
        raw_orders = _extract_orders(payload)
        if raw_orders is None:
            raise MarketDataError(f"Order book response for '{slug}' is malformed")
        orders = [_parse_order(entry) for entry in raw_orders if isinstance(entry, dict)]
        logger.debug("Retrieved %d orders for item %s", len(orders), slug)
        return orders


class WarframeStatusClient(_JsonClient):
    """Client for the warframestat.us world state endpoint."""

    async def fetch_world_state(self) -> dict[str, Any]:
        payload = await self._get_json("")
        if not isinstance(payload, dict):
            raise MarketDataError("World state response must be a JSON object")
        return payload


def _extract_orders(payload: Any) -> list[Any] | None:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        # the "top orders" shape groups the book by side
        sides = [data.get("sell") or [], data.get("buy") or []]
        if not all(isinstance(side, list) for side in sides):
            return None
        return [*sides[0], *sides[1]]
    legacy = payload.get("payload")
    if isinstance(legacy, dict) and isinstance(legacy.get("orders"), list):
        return legacy["orders"]
    if data is None and "data" in payload:
        return []
    return None


def _english(entry: dict[str, Any]) -> dict[str, Any]:
    i18n = entry.get("i18n")
    english = i18n.get("en") if isinstance(i18n, dict) else None
    return english if isinstance(english, dict) else {}


def _parse_order(entry: dict[str, Any]) -> MarketOrder:
    order_type = entry.get("type") or entry.get("order_type") or ""
    try:
        platinum = Decimal(str(entry["platinum"]))
    except (KeyError, InvalidOperation) as exc:
        raise MarketDataError(f"Order without a usable platinum price: {entry!r}") from exc
    if not platinum.is_finite():
        raise MarketDataError(f"Order with a non-finite platinum price: {entry!r}")
    try:
        quantity = int(entry.get("quantity") or 0)
    except (TypeError, ValueError) as exc:
        raise MarketDataError(f"Order with an invalid quantity: {entry!r}") from exc
    user = entry.get("user")
    if not isinstance(user, dict):
        user = {}
    return MarketOrder(
        order_type=str(order_type),
        platinum=platinum,
        quantity=quantity,
        seller=user.get("ingameName") or user.get("ingame_name"),
        seller_status=user.get("status"),
        visible=bool(entry.get("visible", True)),
    )


__all__ = [
    "CatalogItem",
    "ItemDetail",
    "MarketDataError",
    "MarketOrder",
    "RequestThrottle",
    "WarframeMarketClient",
    "WarframeStatusClient",
]
