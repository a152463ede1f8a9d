"""Background loop that fires triggered alerts exactly once."""
import asyncio
import logging
from dataclasses import dataclass

from crypto_alerts.db import Alert, ArchiveReason, Condition
from crypto_alerts.errors import (NotificationError, PersistenceError,
                                  RecipientBlockedError)
from crypto_alerts.services.alert_store import AlertStore
from crypto_alerts.services.notifier import Notifier
from crypto_alerts.services.prices import PriceService
from crypto_alerts.utils import fmt_num

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """Counters for one matcher pass."""

    checked: int = 0
    unresolved: int = 0
    fired: int = 0
    already_gone: int = 0
    blocked: int = 0
    failed: int = 0


def format_fired_message(alert: Alert, price: float) -> str:
    """Chat text sent when ``alert`` fires at ``price``."""
    title = "🛑 *Stop-loss triggered!*" if alert.is_stop_loss else "🔔 *Alert triggered!*"
    direction = "⬆️ above" if alert.condition == Condition.ABOVE else "⬇️ below"
    return (
        f"{title}\n"
        f"Symbol: *{alert.symbol}*\n"
        f"Price now: *{fmt_num(price)}*\n"
        f"Condition: {direction} *{fmt_num(alert.price)}*"
    )


class AlertMatcher:
    """Evaluates every live alert against current prices on a fixed interval.

    One tick: load all alerts, resolve prices for their distinct symbols,
    test each condition, and retire those that are met. Retiring claims the
    alert in the store first and only the claimant notifies the user, so an
    alert fires at most once even if a manual delete races the tick.
    Alerts without a resolved price are skipped until the next tick; a stale
    price is never used for matching.
    """

    def __init__(
        self,
        store: AlertStore,
        prices: PriceService,
        notifier: Notifier,
        *,
        interval: float = 60.0,
    ) -> None:
        self._store = store
        self._prices = prices
        self._notifier = notifier
        self._interval = interval
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None

    async def tick(self) -> TickReport:
        """Run one evaluation pass over all live alerts."""
        report = TickReport()
        alerts = self._store.list_all()
        if not alerts:
            return report

        prices = await self._prices.get_prices(a.symbol for a in alerts)
        blocked: set[int] = set()
        for alert in alerts:
            report.checked += 1
            if alert.user_id in blocked:
                continue
            price = prices.get(alert.symbol)
            if price is None:
                report.unresolved += 1
                continue
            try:
                await self._process(alert, price, report)
            except RecipientBlockedError:
                report.blocked += 1
                blocked.add(alert.user_id)
                self._purge_blocked(alert.user_id)
            except Exception:  # pylint: disable=broad-except
                report.failed += 1
                logger.exception("Failed to process alert %s (%s)", alert.id, alert.symbol)

        self._store.mark_all_stale()
        if report.fired or report.failed:
            logger.info(
                "Matcher tick: %d checked, %d fired, %d unresolved, %d failed",
                report.checked, report.fired, report.unresolved, report.failed,
            )
        return report

    async def _process(self, alert: Alert, price: float, report: TickReport) -> None:
        if not alert.condition.is_met(price, alert.price):
            return
        retired = self._store.delete(
            alert.id, ArchiveReason.TRIGGERED, fired_price=price
        )
        if retired is None:
            report.already_gone += 1
            logger.debug("Alert %s vanished before it could fire", alert.id)
            return
        try:
            await self._notifier.send_message(alert.user_id, format_fired_message(alert, price))
        except RecipientBlockedError:
            self._mark_blocked(alert)
            raise
        except NotificationError as exc:
            logger.warning("Notification for alert %s not delivered: %s", alert.id, exc)
        report.fired += 1
        logger.info(
            "Alert %s fired: %s %s %s at %s",
            alert.id, alert.symbol, alert.condition.value, alert.price, price,
        )

    def _mark_blocked(self, alert: Alert) -> None:
        try:
            self._store.mark_undelivered(alert.id, ArchiveReason.BOT_BLOCKED)
        except PersistenceError as exc:
            logger.warning("Could not re-file undelivered alert %s: %s", alert.id, exc)

    def _purge_blocked(self, user_id: int) -> None:
        try:
            removed = self._store.purge_user(user_id, ArchiveReason.BOT_BLOCKED)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Failed to purge alerts of blocked user %s", user_id)
            return
        logger.warning("User %s blocked the bot; archived %d remaining alerts", user_id, removed)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``interval`` seconds until ``stop_event`` is set.

        A failing tick is logged and the loop carries on.
        """
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            else:
                break
            try:
                await self.tick()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Matcher tick failed")

    def start(self) -> None:
        """Start the background loop."""
        if self._task is not None:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event))

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the current tick to finish."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
