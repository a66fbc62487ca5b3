"""Read-only market search and game status endpoints backing the dashboard."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..clients import MarketDataError, WarframeMarketClient, WarframeStatusClient
from ..schemas import (
    AuthCheckRead,
    CatalogItemRead,
    CurrentUserRead,
    GameStatusRead,
    ItemDetailsRead,
    OrderRead,
    OrderUserRead,
    SearchResponse,
)
from ..security import CurrentUser, get_current_user, get_optional_user
from ..status import summarise_world_state

logger = logging.getLogger(__name__)

router = APIRouter()


def get_market_client(request: Request) -> WarframeMarketClient:
    return request.app.state.market_client


def get_status_client(request: Request) -> WarframeStatusClient:
    return request.app.state.status_client


@router.get("/search/items", response_model=list[CatalogItemRead], tags=["search"])
async def list_catalog_items(
    market_client: WarframeMarketClient = Depends(get_market_client),
) -> list[CatalogItemRead]:
    try:
        catalog = await market_client.list_items()
    except MarketDataError as error:
        logger.error("Error fetching all items: %s", error)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch items"
        ) from error
    return [CatalogItemRead(url_name=item.slug, item_name=item.name) for item in catalog]


@router.get("/search", response_model=SearchResponse, tags=["search"])
async def search_item(
    mod_name: str = Query("", alias="modName"),
    market_client: WarframeMarketClient = Depends(get_market_client),
) -> SearchResponse:
    """Exact (case-insensitive) catalog lookup returning item details and its order book."""

    if not mod_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="modName parameter is required"
        )
    needle = mod_name.strip().casefold()
    try:
        catalog = await market_client.list_items()
        item = next((entry for entry in catalog if entry.name.casefold() == needle), None)
        if item is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
        detail = await market_client.get_item(item.slug)
        orders = await market_client.list_orders(item.slug)
    except MarketDataError as error:
        logger.error("Error searching for mod %s: %s", mod_name, error)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch market data"
        ) from error

    # sells cheapest first, then buys highest first
    ranked = sorted(
        (order for order in orders if order.seller is not None),
        key=lambda order: (not order.is_sell, order.platinum if order.is_sell else -order.platinum),
    )
    return SearchResponse(
        mod_details=ItemDetailsRead(
            item_name=detail.name or item.name,
            description=detail.description or "",
            thumb=detail.thumb or item.thumb,
            icon=detail.icon,
            trading_tax=detail.trading_tax,
            wiki_link=detail.wiki_link,
            url_name=detail.slug or item.slug,
        ),
        orders=[
            OrderRead(
                order_type=order.order_type,
                platinum=order.platinum,
                quantity=order.quantity,
                user=OrderUserRead(ingame_name=order.seller, status=order.seller_status),
            )
            for order in ranked
        ],
    )


@router.get("/gamestatus", response_model=GameStatusRead, tags=["status"])
async def game_status(
    status_client: WarframeStatusClient = Depends(get_status_client),
) -> GameStatusRead:
    try:
        state = await status_client.fetch_world_state()
    except MarketDataError as error:
        logger.error("Error fetching game status: %s", error)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch game status"
        ) from error
    return summarise_world_state(state)


@router.get("/user/me", response_model=CurrentUserRead, tags=["user"])
async def current_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUserRead:
    return CurrentUserRead(user_id=user.id, email=user.email, user_name=user.user_name)


@router.get("/user/check", response_model=AuthCheckRead, tags=["user"])
async def check_auth(user: CurrentUser | None = Depends(get_optional_user)) -> AuthCheckRead:
    return AuthCheckRead(is_authenticated=user is not None)
