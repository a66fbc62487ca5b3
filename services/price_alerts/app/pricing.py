"""Price derivation and the ordered resolution strategies used by the monitor."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

import httpx

from .clients import MarketDataError, MarketOrder, WarframeMarketClient
from .models import PriceAlert

logger = logging.getLogger(__name__)

LOWEST_SELL_ORDERS = 5
PRICE_QUANTUM = Decimal("0.01")

_RESOLUTION_ERRORS = (MarketDataError, httpx.HTTPError, ValueError, TypeError, KeyError)


def derive_price(orders: Iterable[MarketOrder]) -> Decimal | None:
    """Exact mean of the five cheapest sell orders.

    Returns ``None`` when the book has no sell order at all. The mean is not
    rounded: thresholds compare against it, :func:`quantize_price` gives the
    stored value.
    """

    sell_prices = sorted(
        order.platinum for order in orders if order.is_sell and order.platinum.is_finite()
    )
    cheapest = sell_prices[:LOWEST_SELL_ORDERS]
    if not cheapest:
        return None
    return sum(cheapest, Decimal(0)) / len(cheapest)


def quantize_price(price: Decimal) -> Decimal:
    """Round to cents, the precision prices are stored and deduplicated at."""

    return price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


class PriceStrategy(Protocol):
    name: str

    async def resolve(self, alert: PriceAlert) -> Decimal | None:  # pragma: no cover - protocol
        ...


class PriceResolver:
    """Resolve a representative market price, converting every failure into ``None``."""

    def __init__(
        self,
        market_client: WarframeMarketClient,
        strategies: Sequence[PriceStrategy] | None = None,
    ) -> None:
        self._market_client = market_client
        self._strategies: tuple[PriceStrategy, ...] = tuple(
            strategies if strategies is not None else (ItemIdStrategy(self), ItemNameStrategy(self))
        )

    @property
    def strategies(self) -> tuple[PriceStrategy, ...]:
        return self._strategies

    async def resolve(self, alert: PriceAlert) -> Decimal | None:
        """Try each strategy in order until one yields a price."""

        for strategy in self._strategies:
            price = await strategy.resolve(alert)
            if price is not None:
                logger.debug(
                    "Resolved price %s for alert %s via %s", price, alert.id, strategy.name
                )
                return price
        return None

    async def resolve_price_by_item_id(self, item_id: str | None) -> Decimal | None:
        if not item_id or not item_id.strip():
            return None
        try:
            orders = await self._market_client.list_orders(item_id.strip())
        except _RESOLUTION_ERRORS as exc:
            logger.warning("Failed to get price for item '%s': %s", item_id, exc)
            return None
        return derive_price(orders)

    async def resolve_price_by_name(self, name: str | None) -> Decimal | None:
        if not name or not name.strip():
            return None
        needle = name.strip().casefold()
        try:
            catalog = await self._market_client.list_items()
        except _RESOLUTION_ERRORS as exc:
            logger.warning("Failed to search the catalog for '%s': %s", name, exc)
            return None
        match = next((item for item in catalog if needle in item.name.casefold()), None)
        if match is None:
            logger.info("No catalog item matches '%s'", name)
            return None
        return await self.resolve_price_by_item_id(match.slug)


class ItemIdStrategy:
    name = "item_id"

    def __init__(self, resolver: PriceResolver) -> None:
        self._resolver = resolver

    async def resolve(self, alert: PriceAlert) -> Decimal | None:
        return await self._resolver.resolve_price_by_item_id(alert.item_id)


class ItemNameStrategy:
    name = "item_name"

    def __init__(self, resolver: PriceResolver) -> None:
        self._resolver = resolver

    async def resolve(self, alert: PriceAlert) -> Decimal | None:
        return await self._resolver.resolve_price_by_name(alert.item_name)


__all__ = [
    "ItemIdStrategy",
    "ItemNameStrategy",
    "PriceResolver",
    "PriceStrategy",
    "derive_price",
    "quantize_price",
]
