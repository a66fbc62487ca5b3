from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from .models import AlertNotification, PriceAlert

MAX_ALERT_PRICE = Decimal("999999")

# prices travel as JSON numbers, Decimal inside
Price = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PriceAlertCreate(CamelModel):
    """Payload accepted when creating a new price alert."""

    item_name: str = ""
    item_id: str | None = None
    alert_price: Decimal


class PriceAlertUpdate(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    item_name: str | None = None
    alert_price: Decimal | None = None
    is_active: bool | None = None

    def to_update_mapping(self) -> dict[str, object]:
        """Return the columns to change; blank names are ignored."""

        payload: dict[str, object] = {}
        if self.item_name is not None and self.item_name.strip():
            payload["item_name"] = self.item_name.strip()
        if self.alert_price is not None:
            payload["alert_price"] = self.alert_price
        if self.is_active is not None:
            payload["is_active"] = self.is_active
        return payload


class PriceAlertRead(CamelModel):
    id: int
    item_name: str
    item_id: str | None
    alert_price: Price
    current_price: Price | None
    is_active: bool
    is_triggered: bool
    triggered_at: datetime | None
    is_acknowledged: bool
    created_at: datetime
    updated_at: datetime
    last_checked_at: datetime | None

    @classmethod
    def from_orm_alert(cls, alert: PriceAlert) -> "PriceAlertRead":
        return cls(
            id=alert.id,
            item_name=alert.item_name,
            item_id=alert.item_id,
            alert_price=alert.alert_price,
            current_price=alert.current_price,
            is_active=alert.is_active,
            is_triggered=alert.is_triggered,
            triggered_at=alert.triggered_at,
            is_acknowledged=alert.is_acknowledged,
            created_at=alert.created_at,
            updated_at=alert.updated_at,
            last_checked_at=alert.last_checked_at,
        )


class AlertNotificationRead(CamelModel):
    id: int
    price_alert_id: int
    item_name: str
    message: str
    triggered_price: Price
    is_read: bool
    created_at: datetime
    read_at: datetime | None

    @classmethod
    def from_orm_notification(cls, notification: AlertNotification) -> "AlertNotificationRead":
        alert = notification.price_alert
        return cls(
            id=notification.id,
            price_alert_id=notification.price_alert_id,
            item_name=alert.item_name if alert is not None else "Unknown",
            message=notification.message,
            triggered_price=notification.triggered_price,
            is_read=notification.is_read,
            created_at=notification.created_at,
            read_at=notification.read_at,
        )


class CatalogItemRead(BaseModel):
    url_name: str
    item_name: str


class ItemDetailsRead(BaseModel):
    item_name: str
    description: str = ""
    thumb: str | None = None
    icon: str | None = None
    trading_tax: int = 0
    wiki_link: str | None = None
    url_name: str


class OrderUserRead(BaseModel):
    ingame_name: str | None
    status: str | None


class OrderRead(BaseModel):
    order_type: str
    platinum: Price
    quantity: int
    user: OrderUserRead


class SearchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mod_details: ItemDetailsRead | None = Field(default=None, alias="modDetails")
    orders: list[OrderRead] = Field(default_factory=list)


class CycleStatus(CamelModel):
    state: str
    time_left: str | None


class VoidTraderStatus(CamelModel):
    active: bool
    character: str
    location: str
    time_left: str | None = None


class GameStatusRead(CamelModel):
    cetus_cycle: CycleStatus | None = None
    vallis_cycle: CycleStatus | None = None
    void_trader: VoidTraderStatus | None = None


class CurrentUserRead(CamelModel):
    user_id: str
    email: str | None = None
    user_name: str | None = None
    is_authenticated: bool = True


class AuthCheckRead(CamelModel):
    is_authenticated: bool
