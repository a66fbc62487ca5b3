from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

PRICE_PRECISION = Numeric(12, 2, asdecimal=True)


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class PriceAlert(Base):
    __tablename__ = "price_alerts"
    __table_args__ = (
        CheckConstraint("alert_price >= 0", name="ck_price_alerts_alert_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(450), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(500), nullable=False)
    item_id: Mapped[str | None] = mapped_column(String(500), nullable=True)
    alert_price: Mapped[Decimal] = mapped_column(PRICE_PRECISION, nullable=False)
    current_price: Mapped[Decimal | None] = mapped_column(PRICE_PRECISION, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    is_triggered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    triggered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    notifications: Mapped[list["AlertNotification"]] = relationship(
        "AlertNotification", back_populates="price_alert", cascade="all, delete-orphan"
    )

    def mark_triggered(self, now: datetime) -> bool:
        """Enter the triggered state; returns ``False`` when already triggered."""

        if self.is_triggered:
            return False
        self.is_triggered = True
        self.triggered_at = now
        return True

    def reset_trigger(self) -> None:
        self.is_triggered = False
        self.triggered_at = None


class AlertNotification(Base):
    __tablename__ = "alert_notifications"
    __table_args__ = (
        # at most one unread notification per (alert, price)
        Index(
            "uq_alert_notifications_unread_price",
            "price_alert_id",
            "triggered_price",
            unique=True,
            sqlite_where=text("is_read = 0"),
            postgresql_where=text("is_read = false"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(450), nullable=False, index=True)
    price_alert_id: Mapped[int] = mapped_column(
        ForeignKey("price_alerts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    triggered_price: Mapped[Decimal] = mapped_column(PRICE_PRECISION, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    price_alert: Mapped[PriceAlert] = relationship("PriceAlert", back_populates="notifications")

    def mark_read(self, now: datetime) -> None:
        self.is_read = True
        self.read_at = now
