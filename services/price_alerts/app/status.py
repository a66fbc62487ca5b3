"""Summaries of the warframestat.us world state shown on the dashboard."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .schemas import CycleStatus, GameStatusRead, VoidTraderStatus

VOID_TRADER_NAME = "Baro Ki'Teer"


def _parse_expiry(expiry: str | None) -> datetime | None:
    if not expiry:
        return None
    try:
        parsed = datetime.fromisoformat(expiry.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_time_left(expiry: str | None, now: datetime) -> str | None:
    """Human readable countdown to ``expiry``; ``None`` when it cannot be parsed."""

    expires_at = _parse_expiry(expiry)
    if expires_at is None:
        return None
    remaining = int((expires_at - now).total_seconds())
    if remaining < 0:
        return "Just changed"
    hours, rest = divmod(remaining, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours == 0:
        return f"{minutes}m {seconds}s"
    return f"{hours}h {minutes}m"


def summarise_world_state(state: dict[str, Any], now: datetime | None = None) -> GameStatusRead:
    now = now or datetime.now(timezone.utc)

    cetus = None
    cetus_data = state.get("cetusCycle")
    if isinstance(cetus_data, dict):
        is_day = bool(cetus_data.get("isDay"))
        cetus = CycleStatus(
            state="Day" if is_day else "Night",
            time_left=format_time_left(cetus_data.get("expiry"), now)
            or ("Daytime" if is_day else "Nighttime"),
        )

    vallis = None
    vallis_data = state.get("vallisCycle")
    if isinstance(vallis_data, dict):
        is_warm = vallis_data.get("state") == "warm" or bool(vallis_data.get("isWarm"))
        vallis = CycleStatus(
            state="Warm" if is_warm else "Cold",
            time_left=format_time_left(vallis_data.get("expiry"), now)
            or ("Warm Period" if is_warm else "Cold Period"),
        )

    trader = None
    trader_data = state.get("voidTrader")
    if isinstance(trader_data, dict):
        active = bool(trader_data.get("active"))
        if active:
            location = trader_data.get("location") or "Active"
            expiry = trader_data.get("expiry")
        else:
            location = "Away"
            expiry = trader_data.get("activation")
        trader = VoidTraderStatus(
            active=active,
            character=trader_data.get("character") or VOID_TRADER_NAME,
            location=location,
            time_left=format_time_left(expiry, now),
        )

    return GameStatusRead(cetus_cycle=cetus, vallis_cycle=vallis, void_trader=trader)
