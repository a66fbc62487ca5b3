"""Utilities shared across services to standardise observability."""

from .logging import (
    RequestContextMiddleware,
    bind_tick_id,
    configure_logging,
    get_correlation_id,
    get_tick_id,
)
from .metrics import setup_metrics

__all__ = [
    "RequestContextMiddleware",
    "bind_tick_id",
    "configure_logging",
    "get_correlation_id",
    "get_tick_id",
    "setup_metrics",
]
