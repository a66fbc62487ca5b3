from __future__ import annotations

from collections.abc import Iterator
from decimal import Decimal
from typing import Any

import pytest
import sqlalchemy
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from services.price_alerts.app.config import PriceAlertSettings
from services.price_alerts.app.database import Base, enable_sqlite_savepoints
from services.price_alerts.app.main import create_app
from services.price_alerts.app.models import PriceAlert
from services.price_alerts.app.security import create_access_token
from services.price_alerts.tests.utils import FakeMarketClient, FakeStatusClient


@pytest.fixture()
def settings() -> PriceAlertSettings:
    return PriceAlertSettings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        check_interval_seconds=0.05,
        market_requests_per_second=1000.0,
    )


@pytest.fixture()
def in_memory_session_factory() -> Iterator[sessionmaker[Session]]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=sqlalchemy.pool.StaticPool,
        future=True,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture()
def market_client() -> FakeMarketClient:
    return FakeMarketClient()


@pytest.fixture()
def status_client() -> FakeStatusClient:
    return FakeStatusClient()


@pytest.fixture()
def app(
    settings: PriceAlertSettings,
    in_memory_session_factory: sessionmaker[Session],
    market_client: FakeMarketClient,
    status_client: FakeStatusClient,
) -> FastAPI:
    return create_app(
        settings=settings,
        session_factory=in_memory_session_factory,
        market_client=market_client,
        status_client=status_client,
        start_background_tasks=False,
    )


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def auth_headers(settings: PriceAlertSettings):
    def _headers(user_id: str = "user-1", **claims: object) -> dict[str, str]:
        token = create_access_token(user_id, settings, **claims)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def add_alert(in_memory_session_factory: sessionmaker[Session]):
    def _add(**values: Any) -> int:
        values.setdefault("user_id", "user-1")
        values.setdefault("item_name", "Serration")
        values["alert_price"] = Decimal(str(values.get("alert_price", 15)))
        session = in_memory_session_factory()
        try:
            alert = PriceAlert(**values)
            session.add(alert)
            session.commit()
            return alert.id
        finally:
            session.close()

    return _add
