from __future__ import annotations

import logging
from collections.abc import Iterator
from decimal import Decimal

from fastapi import Depends, FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from libs.observability.logging import RequestContextMiddleware, configure_logging
from libs.observability.metrics import setup_metrics

from .clients import WarframeMarketClient, WarframeStatusClient
from .config import PriceAlertSettings
from .database import create_session_factory, get_session
from .models import PriceAlert
from .monitor import PriceAlertMonitor
from .pricing import PriceResolver
from .repository import PriceAlertRepository
from .routes.market import router as market_router
from .schemas import (
    MAX_ALERT_PRICE,
    AlertNotificationRead,
    PriceAlertCreate,
    PriceAlertRead,
    PriceAlertUpdate,
)
from .security import CurrentUser, get_current_user

logger = logging.getLogger(__name__)

ALERT_NOT_FOUND = "Alert not found"
NOTIFICATION_NOT_FOUND = "Notification not found"


def create_app(
    settings: PriceAlertSettings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    market_client: WarframeMarketClient | None = None,
    status_client: WarframeStatusClient | None = None,
    resolver: PriceResolver | None = None,
    start_background_tasks: bool = True,
) -> FastAPI:
    settings = settings or PriceAlertSettings.from_env()
    configure_logging(settings.service_name, settings.log_level)
    session_factory = session_factory or create_session_factory(settings)
    market_client = market_client or WarframeMarketClient(
        settings.market_api_url,
        timeout=settings.http_timeout_seconds,
        user_agent=settings.user_agent,
        requests_per_second=settings.market_requests_per_second,
    )
    status_client = status_client or WarframeStatusClient(
        settings.status_api_url,
        timeout=settings.http_timeout_seconds,
        user_agent=settings.user_agent,
    )
    resolver = resolver or PriceResolver(market_client)

    repository = PriceAlertRepository()
    monitor = PriceAlertMonitor(
        repository=repository,
        resolver=resolver,
        session_factory=session_factory,
        check_interval=settings.check_interval_seconds,
    )

    app = FastAPI(title="Warframe Price Alerts")
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.alert_monitor = monitor
    app.state.market_client = market_client
    app.state.status_client = status_client
    app.state.clients = [market_client, status_client]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware, service_name=settings.service_name)
    setup_metrics(app, service_name=settings.service_name)

    if start_background_tasks:

        @app.on_event("startup")
        async def _startup() -> None:  # pragma: no cover - FastAPI wiring
            await monitor.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - FastAPI wiring
        await monitor.stop()
        for client in app.state.clients:
            await client.aclose()

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, object]:
        """Expose a minimal readiness check for orchestrators and dashboards."""

        return {"status": "ok", "monitor_running": monitor.running}

    def get_session_dep() -> Iterator[Session]:
        yield from get_session(app.state.session_factory)

    def get_repository() -> PriceAlertRepository:
        return repository

    async def _owned_alert(
        alert_id: int, user: CurrentUser, session: Session, repository: PriceAlertRepository
    ) -> PriceAlert:
        alert = await repository.get_alert(session, user.id, alert_id)
        if alert is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=ALERT_NOT_FOUND)
        return alert

    @app.get(
        "/alerts/notifications/unread",
        response_model=list[AlertNotificationRead],
        tags=["notifications"],
    )
    async def list_unread_notifications(
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> list[AlertNotificationRead]:
        notifications = await repository.list_unread_notifications(session, user.id)
        return [AlertNotificationRead.from_orm_notification(n) for n in notifications]

    @app.post(
        "/alerts/notifications/{notification_id}/read",
        response_model=AlertNotificationRead,
        tags=["notifications"],
    )
    async def mark_notification_read(
        notification_id: int,
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> AlertNotificationRead:
        notification = await repository.get_notification(session, user.id, notification_id)
        if notification is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=NOTIFICATION_NOT_FOUND
            )
        updated = await repository.mark_notification_read(session, notification)
        return AlertNotificationRead.from_orm_notification(updated)

    @app.get("/alerts", response_model=list[PriceAlertRead], tags=["alerts"])
    async def list_alerts(
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> list[PriceAlertRead]:
        alerts = await repository.list_alerts(session, user.id)
        return [PriceAlertRead.from_orm_alert(alert) for alert in alerts]

    @app.get("/alerts/{alert_id}", response_model=PriceAlertRead, tags=["alerts"])
    async def get_alert(
        alert_id: int,
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> PriceAlertRead:
        alert = await _owned_alert(alert_id, user, session, repository)
        return PriceAlertRead.from_orm_alert(alert)

    @app.post(
        "/alerts",
        response_model=PriceAlertRead,
        status_code=status.HTTP_201_CREATED,
        tags=["alerts"],
    )
    async def create_alert(
        payload: PriceAlertCreate,
        response: Response,
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> PriceAlertRead:
        item_name = payload.item_name.strip()
        if not item_name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Item name is required"
            )
        _validate_price(payload.alert_price)
        item_id = payload.item_id.strip() if payload.item_id else None

        alert = PriceAlert(
            user_id=user.id,
            item_name=item_name,
            item_id=item_id or None,
            alert_price=payload.alert_price,
            is_active=True,
            is_triggered=False,
            is_acknowledged=False,
        )
        created = await repository.add_alert(session, alert)
        logger.info(
            "User %s created price alert for %s at price %s",
            user.id,
            created.item_name,
            created.alert_price,
        )
        response.headers["Location"] = f"/alerts/{created.id}"
        return PriceAlertRead.from_orm_alert(created)

    @app.put("/alerts/{alert_id}", response_model=PriceAlertRead, tags=["alerts"])
    async def update_alert(
        alert_id: int,
        payload: PriceAlertUpdate,
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> PriceAlertRead:
        alert = await _owned_alert(alert_id, user, session, repository)
        if payload.alert_price is not None:
            _validate_price(payload.alert_price)
        updated = await repository.update_alert(session, alert, payload.to_update_mapping())
        logger.info("User %s updated price alert %s", user.id, alert_id)
        return PriceAlertRead.from_orm_alert(updated)

    @app.delete(
        "/alerts/{alert_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["alerts"]
    )
    async def delete_alert(
        alert_id: int,
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> Response:
        alert = await _owned_alert(alert_id, user, session, repository)
        await repository.delete_alert(session, alert)
        logger.info("User %s deleted price alert %s", user.id, alert_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post(
        "/alerts/{alert_id}/acknowledge", response_model=PriceAlertRead, tags=["alerts"]
    )
    async def acknowledge_alert(
        alert_id: int,
        user: CurrentUser = Depends(get_current_user),
        session: Session = Depends(get_session_dep),
        repository: PriceAlertRepository = Depends(get_repository),
    ) -> PriceAlertRead:
        alert = await _owned_alert(alert_id, user, session, repository)
        updated = await repository.acknowledge_alert(session, alert)
        return PriceAlertRead.from_orm_alert(updated)

    app.include_router(market_router)

    return app


def _validate_price(price: Decimal) -> None:
    if not price.is_finite() or price < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Alert price must be non-negative",
        )
    if price > MAX_ALERT_PRICE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Alert price must be between 0 and {MAX_ALERT_PRICE:,}",
        )
