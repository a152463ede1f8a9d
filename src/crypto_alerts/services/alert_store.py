"""Alert persistence with a read-through, invalidate-on-write cache."""
import logging
import math
import time
import uuid
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from crypto_alerts.db import (Alert, AlertArchive, AlertKind, AlertsOrder,
                              ArchiveReason, UserPreferences, as_utc,
                              get_session, utcnow)
from crypto_alerts.errors import (AlertLimitExceededError, InvalidAlertError,
                                  PersistenceError)
from crypto_alerts.providers.core.utils import QUOTE_ASSET

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CacheEntry:
    alerts: tuple[Alert, ...]
    fetched_at: float


class AlertStore:
    """Source of truth for live alerts, plus the archive of retired ones.

    Reads go through a TTL cache, per user and for the full alert set used by
    the matcher. Every successful create or delete invalidates the affected
    user's entry and forces the global entry stale before returning, so a
    read that follows a write always sees it. Caches are disposable: dropping
    them costs latency, never correctness.

    Returned Alert objects are detached snapshots; treat them as read-only.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        cache_ttl: float = 20.0,
        max_alerts_per_user: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine for the alerts database.
            cache_ttl: Seconds a cached alert list is served.
            max_alerts_per_user: Optional cap on live alerts per user.
            clock: Monotonic time source (injectable for tests).
        """
        self._engine = engine
        self._ttl = cache_ttl
        self._limit = max_alerts_per_user
        self._clock = clock
        self._by_user: dict[int, _CacheEntry] = {}
        self._all: _CacheEntry | None = None

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        try:
            with get_session(self._engine) as session:
                yield session
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Alert store error: {exc}") from exc

    def _is_fresh(self, entry: _CacheEntry | None) -> bool:
        return entry is not None and self._clock() - entry.fetched_at < self._ttl

    @staticmethod
    def _ordered(query):  # noqa: ANN001, ANN205
        return query.order_by(Alert.created_at, Alert.kind, Alert.id)

    # ---- Reads ----

    def list_for_user(
        self, user_id: int, order: AlertsOrder = AlertsOrder.NEW_BOTTOM
    ) -> list[Alert]:
        """A user's live alerts, oldest first unless ``order`` is NEW_TOP."""
        entry = self._by_user.get(user_id)
        if not self._is_fresh(entry):
            with self._session() as session:
                rows = session.exec(
                    self._ordered(select(Alert).where(Alert.user_id == user_id))
                ).all()
            entry = _CacheEntry(tuple(rows), self._clock())
            self._by_user[user_id] = entry
        alerts = list(entry.alerts)
        if order == AlertsOrder.NEW_TOP:
            alerts.reverse()
        return alerts

    def list_all(self) -> list[Alert]:
        """Every live alert. Used by the matcher."""
        if not self._is_fresh(self._all):
            with self._session() as session:
                rows = session.exec(self._ordered(select(Alert))).all()
            self._all = _CacheEntry(tuple(rows), self._clock())
        return list(self._all.alerts)

    def get(self, alert_id: str) -> Alert | None:
        with self._session() as session:
            return session.get(Alert, alert_id)

    def count_for_user(self, user_id: int) -> int:
        with self._session() as session:
            return self._count(session, user_id)

    @staticmethod
    def _count(session: Session, user_id: int) -> int:
        return session.exec(
            select(func.count()).select_from(Alert).where(Alert.user_id == user_id)
        ).one()

    def list_archive(
        self, user_id: int, since: datetime, symbol: str | None = None
    ) -> list[AlertArchive]:
        """Archived alerts of a user since ``since``, newest first.

        ``symbol`` may be a bare asset (``BTC``) or a pair (``BTC-USDT``).
        """
        query = select(AlertArchive).where(
            AlertArchive.user_id == user_id,
            AlertArchive.archived_at >= as_utc(since),
        )
        if symbol:
            sym = symbol.strip().upper()
            query = query.where(
                or_(AlertArchive.symbol == sym, AlertArchive.symbol == f"{sym}-{QUOTE_ASSET}")
            )
        with self._session() as session:
            return list(
                session.exec(
                    query.order_by(col(AlertArchive.archived_at).desc(), col(AlertArchive.id).desc())
                ).all()
            )

    def get_alerts_order(self, user_id: int) -> AlertsOrder:
        """The user's list order preference; NEW_BOTTOM when never set."""
        with self._session() as session:
            prefs = session.get(UserPreferences, user_id)
            return prefs.alerts_order if prefs is not None else AlertsOrder.NEW_BOTTOM

    # ---- Cache control ----

    def invalidate(self, user_id: int) -> None:
        """Drop the user's cached list and force the global list stale."""
        self._by_user.pop(user_id, None)
        self.mark_all_stale()
        logger.debug("Invalidated alert caches for user %s", user_id)

    def mark_all_stale(self) -> None:
        self._all = None

    # ---- Writes ----

    @staticmethod
    def _validate(alert: Alert) -> None:
        if not alert.symbol:
            raise InvalidAlertError("Symbol must not be empty")
        if not isinstance(alert.price, (int, float)) or not math.isfinite(alert.price):
            raise InvalidAlertError(f"Target price must be a finite number, got {alert.price!r}")
        if alert.price <= 0:
            raise InvalidAlertError(f"Target price must be positive, got {alert.price}")

    def _ensure_capacity(self, session: Session, user_id: int, needed: int) -> None:
        if self._limit is None:
            return
        current = self._count(session, user_id)
        if current + needed > self._limit:
            raise AlertLimitExceededError(user_id, current, self._limit)

    def create(self, alert: Alert) -> Alert:
        """Insert one standalone alert. Raises on invalid input or store failure."""
        self._validate(alert)
        alert.group_id = None
        with self._session() as session:
            self._ensure_capacity(session, alert.user_id, 1)
            session.add(alert)
        self.invalidate(alert.user_id)
        return alert

    def create_paired(self, alert: Alert, stop_loss: Alert) -> tuple[Alert, Alert]:
        """Insert an alert and its stop-loss in one transaction, linked by group id."""
        if alert.user_id != stop_loss.user_id or alert.symbol != stop_loss.symbol:
            raise InvalidAlertError("Paired alerts must share user and symbol")
        self._validate(alert)
        self._validate(stop_loss)
        group_id = uuid.uuid4().hex
        created_at = utcnow()
        for record, kind in ((alert, AlertKind.ALERT), (stop_loss, AlertKind.STOP_LOSS)):
            record.kind = kind
            record.group_id = group_id
            record.created_at = created_at
        with self._session() as session:
            self._ensure_capacity(session, alert.user_id, 2)
            session.add_all([alert, stop_loss])
        self.invalidate(alert.user_id)
        return alert, stop_loss

    @staticmethod
    def _archive_copy(
        alert: Alert,
        reason: ArchiveReason,
        now: datetime,
        fired_price: float | None = None,
    ) -> AlertArchive:
        triggered = reason == ArchiveReason.TRIGGERED
        return AlertArchive(
            alert_id=alert.id,
            user_id=alert.user_id,
            symbol=alert.symbol,
            condition=alert.condition,
            price=alert.price,
            kind=alert.kind,
            group_id=alert.group_id,
            created_at=as_utc(alert.created_at),
            reason=reason,
            archived_at=now,
            fired_at=now if triggered else None,
            fired_price=fired_price if triggered else None,
            deleted_at=None if triggered else now,
        )

    def delete(
        self,
        alert_id: str,
        reason: ArchiveReason = ArchiveReason.USER_DELETED,
        *,
        user_id: int | None = None,
        fired_price: float | None = None,
    ) -> Alert | None:
        """Archive and remove an alert.

        The removal is conditional on the row still existing and shares a
        transaction with the archive insert, so of two racing deletes exactly
        one wins and archives; the other gets None.

        Args:
            alert_id: Alert to retire.
            reason: Archive reason code.
            user_id: When given, alerts owned by another user count as not found.
            fired_price: Price that triggered the alert (matcher only).

        Returns:
            The deleted alert, or None if it was not found.
        """
        with self._session() as session:
            alert = session.get(Alert, alert_id)
            if alert is None or (user_id is not None and alert.user_id != user_id):
                return None
            result = session.execute(
                delete(Alert)
                .where(Alert.id == alert_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            session.add(self._archive_copy(alert, reason, utcnow(), fired_price))
        self.invalidate(alert.user_id)
        return alert

    def set_alerts_order(self, user_id: int, order: AlertsOrder) -> AlertsOrder:
        with self._session() as session:
            prefs = session.get(UserPreferences, user_id)
            if prefs is None:
                prefs = UserPreferences(user_id=user_id)
            prefs.alerts_order = AlertsOrder(order)
            session.add(prefs)
        logger.debug("User %s alerts order set to %s", user_id, order)
        return AlertsOrder(order)

    def mark_undelivered(self, alert_id: str, reason: ArchiveReason) -> None:
        """Re-file a fired alert whose notification could not be delivered."""
        now = utcnow()
        with self._session() as session:
            rows = session.exec(
                select(AlertArchive).where(
                    AlertArchive.alert_id == alert_id,
                    AlertArchive.reason == ArchiveReason.TRIGGERED,
                )
            ).all()
            for row in rows:
                row.reason = reason
                row.fired_at = None
                row.fired_price = None
                row.deleted_at = now
                session.add(row)

    def purge_user(self, user_id: int, reason: ArchiveReason) -> int:
        """Archive and remove all of a user's alerts. Returns how many were removed."""
        now = utcnow()
        with self._session() as session:
            alerts: Iterable[Alert] = session.exec(
                select(Alert).where(Alert.user_id == user_id)
            ).all()
            ids = [a.id for a in alerts]
            if ids:
                session.execute(
                    delete(Alert)
                    .where(col(Alert.id).in_(ids))
                    .execution_options(synchronize_session=False)
                )
                session.add_all([self._archive_copy(a, reason, now) for a in alerts])
        self.invalidate(user_id)
        return len(ids)
