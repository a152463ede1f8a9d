"""Pydantic schemas for API and runtime use. Not persisted to DB."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from crypto_alerts.db import AlertKind, AlertsOrder, ArchiveReason, Condition


class InlineButton(BaseModel):
    """One chat inline-keyboard button; ``callback_data`` carries the page token."""

    text: str
    callback_data: str


ButtonRows = list[list[InlineButton]]


class AlertOut(BaseModel):
    """Alert as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: int
    symbol: str
    condition: Condition
    price: float
    kind: AlertKind
    group_id: str | None = None
    created_at: datetime


class CreateAlertRequest(BaseModel):
    user_id: int
    symbol: str = Field(min_length=1)
    condition: Condition
    price: float


class CreatePairedAlertRequest(CreateAlertRequest):
    """Alert plus stop-loss created together and linked by a group id."""

    stop_loss_price: float


class AlertsOrderSetting(BaseModel):
    """Whether new alerts are listed last (default) or first."""

    order: AlertsOrder


class AlertsPageView(BaseModel):
    """One rendered page of a user's alert list."""

    text: str
    page_buttons: ButtonRows = Field(default_factory=list)
    page: int = 0
    page_count: int = 1


class DeleteMenuView(BaseModel):
    """Delete-action keyboard; ``page`` is None for the unscoped (all) menu."""

    action_buttons: ButtonRows = Field(default_factory=list)
    page: int | None = None
    page_count: int = 1


class DeleteOutcome(BaseModel):
    """Result of deleting from the menu: what was removed and the menu to show next."""

    deleted: AlertOut | None = None
    page: int | None = None
    page_count: int = 1
    menu: DeleteMenuView


class ArchivePageView(BaseModel):
    """One page of the archived (fired or deleted) alerts listing."""

    text: str
    page_buttons: ButtonRows = Field(default_factory=list)
    page: int = 0
    page_count: int = 1


class ViewUpdate(BaseModel):
    """Authoritative view pushed after an optimistic render was shown."""

    user_id: int
    view_kind: str  # "alerts_page" | "delete_menu"
    view: AlertsPageView | DeleteMenuView


__all__ = [
    "AlertOut",
    "AlertsOrderSetting",
    "AlertsPageView",
    "ArchivePageView",
    "ButtonRows",
    "CreateAlertRequest",
    "CreatePairedAlertRequest",
    "DeleteMenuView",
    "DeleteOutcome",
    "InlineButton",
    "ViewUpdate",
]
