from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from prometheus_client import Counter
from sqlalchemy.orm import Session

from libs.observability.logging import bind_tick_id

from .models import PriceAlert, utcnow
from .pricing import PriceResolver, quantize_price
from .repository import PriceAlertRepository

logger = logging.getLogger(__name__)

_TICKS = Counter(
    "price_alert_ticks_total",
    "Price alert monitor ticks by outcome",
    labelnames=("outcome",),
)
_NOTIFICATIONS = Counter(
    "price_alert_notifications_total",
    "Notifications created by the price alert monitor",
)


class AlertOutcome(str, enum.Enum):
    UNRESOLVED = "unresolved"
    BELOW_THRESHOLD = "below_threshold"
    ABOVE_THRESHOLD = "above_threshold"


@dataclass(slots=True)
class TickReport:
    """Counters describing what one sweep over the active alerts did."""

    checked: int = 0
    unresolved: int = 0
    triggered: int = 0
    notified: int = 0
    reset: int = 0
    failed: int = 0

    def merge(self, other: "TickReport") -> None:
        self.checked += other.checked
        self.unresolved += other.unresolved
        self.triggered += other.triggered
        self.notified += other.notified
        self.reset += other.reset
        self.failed += other.failed


class PriceAlertMonitor:
    """Periodically sweeps active alerts, applies the trigger/reset policy and persists the result.

    Every tick borrows a fresh session from ``session_factory`` and releases it
    when done, so no ORM state survives from one tick to the next. Ticks never
    overlap: a tick requested while another one runs is skipped.
    """

    def __init__(
        self,
        repository: PriceAlertRepository,
        resolver: PriceResolver,
        session_factory: Callable[[], Session],
        check_interval: float,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._resolver = resolver
        self._session_factory = session_factory
        self._check_interval = check_interval
        self._clock = clock
        self._tick_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_periodic(), name="price-alert-monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None

    async def _run_periodic(self) -> None:
        logger.info(
            "Price alert monitor started",
            extra={"check_interval_seconds": self._check_interval},
        )
        while not self._stop_event.is_set():
            try:
                await self.run_tick()
            except Exception:
                logger.exception("Price alert tick failed, retrying on next interval")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._check_interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Price alert monitor stopped")

    async def run_tick(self) -> TickReport | None:
        """Run one sweep; returns ``None`` when skipped because a tick is in flight.

        Persistence failures propagate after the session was rolled back.
        """

        if self._tick_lock.locked():
            logger.warning("Previous price alert tick still running, skipping this one")
            _TICKS.labels("skipped").inc()
            return None
        async with self._tick_lock:
            with bind_tick_id():
                try:
                    report = await self._sweep()
                except Exception:
                    _TICKS.labels("failed").inc()
                    raise
        _TICKS.labels("completed").inc()
        return report

    async def _sweep(self) -> TickReport:
        report = TickReport()
        async with self._session_scope() as session:
            alerts = await self._repository.list_active_alerts(session)
            if not alerts:
                logger.debug("No active alerts to check")
                return report

            logger.info("Checking %d active price alerts", len(alerts))
            for alert in alerts:
                alert_id, item_name = alert.id, alert.item_name
                alert_report = TickReport()
                # one SAVEPOINT per alert: a failed statement must not poison the tick's transaction
                savepoint = await asyncio.to_thread(session.begin_nested)
                try:
                    outcome = await self._check_alert(session, alert, alert_report)
                    await asyncio.to_thread(savepoint.commit)
                except Exception:
                    await asyncio.to_thread(savepoint.rollback)
                    report.failed += 1
                    logger.exception(
                        "Error checking price for alert %s (%s)", alert_id, item_name
                    )
                    continue
                alert_report.checked += 1
                if outcome is AlertOutcome.UNRESOLVED:
                    alert_report.unresolved += 1
                report.merge(alert_report)

            await self._repository.save_alert_batch(session, alerts)

        _NOTIFICATIONS.inc(report.notified)
        logger.info(
            "Price alert tick finished",
            extra={
                "checked": report.checked,
                "unresolved": report.unresolved,
                "triggered": report.triggered,
                "notified": report.notified,
                "reset": report.reset,
                "failed": report.failed,
            },
        )
        return report

    async def _check_alert(
        self, session: Session, alert: PriceAlert, report: TickReport
    ) -> AlertOutcome:
        resolved = await self._resolver.resolve(alert)
        now = self._clock()

        if resolved is None:
            logger.info("No price available for alert %s (%s)", alert.id, alert.item_name)
            alert.last_checked_at = now
            return AlertOutcome.UNRESOLVED

        # the threshold sees the exact mean, storage and dedup the cent value
        price = quantize_price(resolved)
        if resolved <= alert.alert_price:
            already_notified = await self._repository.has_unread_notification(
                session, alert.id, price
            )
            logger.warning(
                "Price condition met for %s: current price %s <= alert price %s",
                alert.item_name,
                price,
                alert.alert_price,
            )
            if alert.mark_triggered(now):
                report.triggered += 1
            if already_notified:
                logger.info(
                    "Unread notification already exists for alert %s at price %s, skipping",
                    alert.id,
                    price,
                )
            else:
                self._repository.insert_notification(session, alert, price, now)
                report.notified += 1
                logger.warning(
                    "Notification created for alert %s (%s) at price %s",
                    alert.id,
                    alert.item_name,
                    price,
                )
            outcome = AlertOutcome.BELOW_THRESHOLD
        else:
            if alert.is_triggered:
                has_unread = await self._repository.has_any_unread_notification(session, alert.id)
                if not has_unread:
                    alert.reset_trigger()
                    report.reset += 1
                    logger.info(
                        "Reset alert %s, price above threshold and all notifications read",
                        alert.id,
                    )
            outcome = AlertOutcome.ABOVE_THRESHOLD

        alert.current_price = price
        alert.last_checked_at = now
        return outcome

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()


__all__ = ["AlertOutcome", "PriceAlertMonitor", "TickReport"]
