"""Per-user, per-symbol price last shown in the alert list."""
import logging
import time
from collections.abc import Callable, Mapping

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from crypto_alerts.db import LastAlertView, get_session
from crypto_alerts.errors import PersistenceError
from crypto_alerts.providers.core.utils import is_valid_price

logger = logging.getLogger(__name__)


class LastViewedPriceStore:
    """Remembers the price each user last saw per symbol.

    Only feeds the "change since last view" line of rendered entries; the
    matcher never reads it.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        cache_ttl: float = 20.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._ttl = cache_ttl
        self._clock = clock
        self._cache: dict[int, tuple[dict[str, float], float]] = {}

    def get_for_user(self, user_id: int) -> dict[str, float]:
        """symbol -> last displayed price for ``user_id``."""
        cached = self._cache.get(user_id)
        if cached is not None and self._clock() - cached[1] < self._ttl:
            return dict(cached[0])
        try:
            with get_session(self._engine) as session:
                rows = session.exec(
                    select(LastAlertView).where(LastAlertView.user_id == user_id)
                ).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Last-view read failed: {exc}") from exc
        views = {r.symbol: r.last_price for r in rows if is_valid_price(r.last_price)}
        self._cache[user_id] = (views, self._clock())
        return dict(views)

    def set_many(self, user_id: int, prices: Mapping[str, float]) -> None:
        """Upsert displayed prices; non-finite or non-positive values are ignored."""
        updates = {s: p for s, p in prices.items() if is_valid_price(p)}
        if not updates:
            return
        try:
            with get_session(self._engine) as session:
                existing = {
                    row.symbol: row
                    for row in session.exec(
                        select(LastAlertView).where(
                            LastAlertView.user_id == user_id,
                            col(LastAlertView.symbol).in_(list(updates)),
                        )
                    ).all()
                }
                for symbol, price in updates.items():
                    row = existing.get(symbol)
                    if row is None:
                        session.add(LastAlertView(user_id=user_id, symbol=symbol, last_price=price))
                    else:
                        row.last_price = price
                        session.add(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Last-view write failed: {exc}") from exc
        finally:
            self._cache.pop(user_id, None)
