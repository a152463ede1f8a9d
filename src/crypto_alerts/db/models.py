"""Database models for the alerts service.

Only alert state is persisted. Market prices are fetched on demand and
cached in memory; they are not stored in the database.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Index, UniqueConstraint
from sqlmodel import Field, SQLModel


class Condition(str, Enum):
    """Direction a price must cross for an alert to fire."""

    ABOVE = "above"
    BELOW = "below"

    def is_met(self, price: float, target: float) -> bool:
        """Strict comparison: touching the target is not enough."""
        if self is Condition.ABOVE:
            return price > target
        return price < target

    @property
    def opposite(self) -> "Condition":
        return Condition.BELOW if self is Condition.ABOVE else Condition.ABOVE


class AlertKind(str, Enum):
    """Plain notification or the stop-loss half of a pair."""

    ALERT = "alert"
    STOP_LOSS = "stop_loss"


class ArchiveReason(str, Enum):
    """Why an alert left the live set."""

    USER_DELETED = "user_deleted"
    TRIGGERED = "triggered"
    BOT_BLOCKED = "bot_blocked"


class AlertsOrder(str, Enum):
    """How a user's alerts are listed; persisted order is creation time."""

    NEW_BOTTOM = "new_bottom"
    NEW_TOP = "new_top"


def _new_alert_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime read back from a backend that drops tzinfo."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class Alert(SQLModel, table=True):
    """A live price alert. Rows are inserted and deleted, never updated."""

    __tablename__ = "alerts"
    __table_args__ = (Index("ix_alerts_user_id_symbol", "user_id", "symbol"),)

    id: str = Field(default_factory=_new_alert_id, primary_key=True)
    user_id: int = Field(index=True)
    symbol: str = Field(index=True)  # e.g. BTC-USDT
    condition: Condition
    price: float
    kind: AlertKind = Field(default=AlertKind.ALERT)
    group_id: str | None = Field(default=None, index=True)  # links alert + stop-loss
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_stop_loss(self) -> bool:
        return self.kind == AlertKind.STOP_LOSS


class AlertArchive(SQLModel, table=True):
    """Copy of an alert that was deleted by the user or fired by the matcher."""

    __tablename__ = "alerts_archive"

    id: int | None = Field(default=None, primary_key=True)
    alert_id: str = Field(index=True)
    user_id: int = Field(index=True)
    symbol: str
    condition: Condition
    price: float
    kind: AlertKind
    group_id: str | None = None
    created_at: datetime
    reason: ArchiveReason
    archived_at: datetime = Field(default_factory=utcnow)
    fired_at: datetime | None = None
    fired_price: float | None = None
    deleted_at: datetime | None = None


class LastAlertView(SQLModel, table=True):
    """Price shown to a user the last time a symbol appeared in their list."""

    __tablename__ = "last_alert_views"
    __table_args__ = (
        UniqueConstraint("user_id", "symbol", name="uq_last_alert_views_user_symbol"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    symbol: str
    last_price: float


class UserPreferences(SQLModel, table=True):
    """Per-user display settings."""

    __tablename__ = "user_preferences"

    user_id: int = Field(primary_key=True)
    alerts_order: AlertsOrder = Field(default=AlertsOrder.NEW_BOTTOM)
