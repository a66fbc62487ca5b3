from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from decimal import Decimal

from sqlalchemy import exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .models import AlertNotification, PriceAlert, utcnow

logger = logging.getLogger(__name__)

NOTIFICATION_MESSAGE = (
    "The price of {item_name} has dropped to {price} platinum (alert threshold: {threshold})"
)


class PriceAlertRepository:
    """Repository handling persistence for price alerts and their notifications.

    Monitor-side helpers never commit on their own: a tick accumulates its
    changes in one session and persists them through :meth:`save_alert_batch`.
    User-facing helpers are always scoped by ``user_id`` and commit immediately.
    """

    # -- monitor side -----------------------------------------------------

    async def list_active_alerts(self, session: Session) -> Sequence[PriceAlert]:
        def _query() -> Sequence[PriceAlert]:
            # triggered alerts stay in the sweep, otherwise they could never reset
            stmt = select(PriceAlert).where(PriceAlert.is_active.is_(True)).order_by(PriceAlert.id)
            return session.execute(stmt).scalars().all()

        return await asyncio.to_thread(_query)

    async def has_unread_notification(
        self, session: Session, alert_id: int, price: Decimal
    ) -> bool:
        def _check() -> bool:
            stmt = select(
                exists().where(
                    AlertNotification.price_alert_id == alert_id,
                    AlertNotification.is_read.is_(False),
                    AlertNotification.triggered_price == price,
                )
            )
            return bool(session.execute(stmt).scalar())

        return await asyncio.to_thread(_check)

    async def has_any_unread_notification(self, session: Session, alert_id: int) -> bool:
        def _check() -> bool:
            stmt = select(
                exists().where(
                    AlertNotification.price_alert_id == alert_id,
                    AlertNotification.is_read.is_(False),
                )
            )
            return bool(session.execute(stmt).scalar())

        return await asyncio.to_thread(_check)

    def insert_notification(
        self, session: Session, alert: PriceAlert, price: Decimal, now: datetime
    ) -> AlertNotification:
        notification = AlertNotification(
            user_id=alert.user_id,
            price_alert=alert,
            message=NOTIFICATION_MESSAGE.format(
                item_name=alert.item_name,
                price=_format_price(price),
                threshold=_format_price(alert.alert_price),
            ),
            triggered_price=price,
            is_read=False,
            created_at=now,
        )
        session.add(notification)
        return notification

    async def save_alert_batch(self, session: Session, alerts: Sequence[PriceAlert]) -> None:
        def _commit() -> None:
            try:
                session.add_all(alerts)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

        await asyncio.to_thread(_commit)

    # -- user side --------------------------------------------------------

    async def list_alerts(self, session: Session, user_id: str) -> Sequence[PriceAlert]:
        def _query() -> Sequence[PriceAlert]:
            stmt = (
                select(PriceAlert)
                .where(PriceAlert.user_id == user_id)
                .order_by(PriceAlert.created_at.desc(), PriceAlert.id.desc())
            )
            return session.execute(stmt).scalars().all()

        return await asyncio.to_thread(_query)

    async def get_alert(self, session: Session, user_id: str, alert_id: int) -> PriceAlert | None:
        def _get() -> PriceAlert | None:
            stmt = select(PriceAlert).where(
                PriceAlert.id == alert_id, PriceAlert.user_id == user_id
            )
            return session.execute(stmt).scalar_one_or_none()

        return await asyncio.to_thread(_get)

    async def add_alert(self, session: Session, alert: PriceAlert) -> PriceAlert:
        def _add() -> PriceAlert:
            session.add(alert)
            session.commit()
            session.refresh(alert)
            return alert

        return await asyncio.to_thread(_add)

    async def update_alert(
        self, session: Session, alert: PriceAlert, values: Mapping[str, object]
    ) -> PriceAlert:
        def _update() -> PriceAlert:
            for field, value in values.items():
                setattr(alert, field, value)
            alert.updated_at = utcnow()
            session.add(alert)
            session.commit()
            session.refresh(alert)
            return alert

        return await asyncio.to_thread(_update)

    async def acknowledge_alert(self, session: Session, alert: PriceAlert) -> PriceAlert:
        return await self.update_alert(session, alert, {"is_acknowledged": True})

    async def delete_alert(self, session: Session, alert: PriceAlert) -> None:
        def _delete() -> None:
            session.delete(alert)
            session.commit()

        await asyncio.to_thread(_delete)

    async def list_unread_notifications(
        self, session: Session, user_id: str
    ) -> Sequence[AlertNotification]:
        def _query() -> Sequence[AlertNotification]:
            stmt = (
                select(AlertNotification)
                .options(joinedload(AlertNotification.price_alert))
                .where(
                    AlertNotification.user_id == user_id,
                    AlertNotification.is_read.is_(False),
                )
                .order_by(AlertNotification.created_at.desc(), AlertNotification.id.desc())
            )
            return session.execute(stmt).scalars().all()

        return await asyncio.to_thread(_query)

    async def get_notification(
        self, session: Session, user_id: str, notification_id: int
    ) -> AlertNotification | None:
        def _get() -> AlertNotification | None:
            stmt = (
                select(AlertNotification)
                .options(joinedload(AlertNotification.price_alert))
                .where(
                    AlertNotification.id == notification_id,
                    AlertNotification.user_id == user_id,
                )
            )
            return session.execute(stmt).scalar_one_or_none()

        return await asyncio.to_thread(_get)

    async def mark_notification_read(
        self, session: Session, notification: AlertNotification
    ) -> AlertNotification:
        def _mark() -> AlertNotification:
            notification.mark_read(utcnow())
            session.add(notification)
            session.commit()
            session.refresh(notification)
            return notification

        return await asyncio.to_thread(_mark)


def _format_price(value: Decimal) -> str:
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


__all__ = ["NOTIFICATION_MESSAGE", "PriceAlertRepository"]
