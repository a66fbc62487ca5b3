from __future__ import annotations

import os
from dataclasses import dataclass

from libs.env import get_csv, get_database_url


@dataclass(slots=True)
class PriceAlertSettings:
    """Application settings for the price alerts service."""

    service_name: str = "price-alerts"
    database_url: str = "sqlite:///./price_alerts.db"
    market_api_url: str = "https://api.warframe.market/v2/"
    status_api_url: str = "https://api.warframestat.us/pc"
    user_agent: str = "WarframeUtils/1.0 (+https://github.com/)"
    http_timeout_seconds: float = 10.0
    market_requests_per_second: float = 3.0
    check_interval_seconds: float = 30.0
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    cors_origins: tuple[str, ...] = ("http://localhost:3000", "http://localhost:3001")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PriceAlertSettings":
        defaults = cls()
        return cls(
            database_url=get_database_url(env_var="PRICE_ALERTS_DATABASE_URL"),
            market_api_url=os.getenv("PRICE_ALERTS_MARKET_API_URL", defaults.market_api_url),
            status_api_url=os.getenv("PRICE_ALERTS_STATUS_API_URL", defaults.status_api_url),
            user_agent=os.getenv("PRICE_ALERTS_USER_AGENT", defaults.user_agent),
            http_timeout_seconds=float(
                os.getenv("PRICE_ALERTS_HTTP_TIMEOUT_SECONDS", defaults.http_timeout_seconds)
            ),
            market_requests_per_second=float(
                os.getenv(
                    "PRICE_ALERTS_MARKET_REQUESTS_PER_SECOND",
                    defaults.market_requests_per_second,
                )
            ),
            check_interval_seconds=float(
                os.getenv("PRICE_ALERTS_CHECK_INTERVAL_SECONDS", defaults.check_interval_seconds)
            ),
            jwt_secret=os.getenv("PRICE_ALERTS_JWT_SECRET", os.getenv("JWT_SECRET", defaults.jwt_secret)),
            jwt_algorithm=os.getenv("PRICE_ALERTS_JWT_ALGORITHM", defaults.jwt_algorithm),
            cors_origins=get_csv("PRICE_ALERTS_CORS_ORIGINS", defaults.cors_origins),
            log_level=os.getenv("PRICE_ALERTS_LOG_LEVEL", defaults.log_level).upper(),
        )
