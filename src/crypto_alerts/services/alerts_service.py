"""Alerts service: creation, deletion and the views shown to a user."""
import logging

from crypto_alerts.db import Alert, AlertsOrder, ArchiveReason, Condition
from crypto_alerts.errors import InvalidAlertError
from crypto_alerts.providers.core.utils import normalize_symbol
from crypto_alerts.schemas import (AlertOut, AlertsPageView, ArchivePageView,
                                   DeleteMenuView, DeleteOutcome)
from crypto_alerts.services import pagination
from crypto_alerts.services.alert_store import AlertStore
from crypto_alerts.services.pagination import PageToken
from crypto_alerts.services.renderer import AlertListRenderer

logger = logging.getLogger(__name__)


class AlertsService:
    """Entry point for user-facing alert operations.

    Writes go through the AlertStore, which invalidates the affected caches
    before returning, so a render right after a create or delete already
    reflects it.
    """

    def __init__(self, store: AlertStore, renderer: AlertListRenderer) -> None:
        self._store = store
        self._renderer = renderer

    @staticmethod
    def _symbol(symbol: str) -> str:
        try:
            return normalize_symbol(symbol)
        except ValueError as exc:
            raise InvalidAlertError(str(exc)) from exc

    def create_alert(
        self, user_id: int, symbol: str, condition: Condition, price: float
    ) -> Alert:
        """Create a standalone alert.

        Args:
            user_id: Owner of the alert.
            symbol: Pair (``BTC-USDT``) or bare base asset (``btc``).
            condition: Direction the price must cross.
            price: Target price, finite and positive.

        Returns:
            The stored alert.

        Raises:
            InvalidAlertError: On an empty symbol or a bad target price.
            AlertLimitExceededError: When the user has no free alert slot.
            PersistenceError: When the store write fails.
        """
        alert = Alert(
            user_id=user_id,
            symbol=self._symbol(symbol),
            condition=Condition(condition),
            price=price,
        )
        created = self._store.create(alert)
        logger.info("Created alert %s for user %s: %s %s %s",
                    created.id, user_id, created.symbol, created.condition.value, price)
        return created

    def create_paired_alert(
        self,
        user_id: int,
        symbol: str,
        condition: Condition,
        price: float,
        stop_loss_price: float,
    ) -> tuple[Alert, Alert]:
        """Create an alert and its stop-loss atomically.

        The stop-loss watches the opposite direction of the alert, e.g. an
        ``above 3000`` alert pairs with a ``below 2500`` stop-loss.
        """
        sym = self._symbol(symbol)
        condition = Condition(condition)
        alert = Alert(user_id=user_id, symbol=sym, condition=condition, price=price)
        stop_loss = Alert(
            user_id=user_id, symbol=sym, condition=condition.opposite, price=stop_loss_price
        )
        created = self._store.create_paired(alert, stop_loss)
        logger.info("Created paired alert %s for user %s on %s", created[0].group_id, user_id, sym)
        return created

    def delete_alert(self, alert_id: str, user_id: int | None = None) -> Alert | None:
        """Archive and remove an alert; None when it no longer exists."""
        return self._store.delete(alert_id, ArchiveReason.USER_DELETED, user_id=user_id)

    async def delete_from_menu(
        self, user_id: int, alert_id: str, page: PageToken
    ) -> DeleteOutcome:
        """Delete from the delete menu and build the menu to show next.

        The page count is recomputed from what is left after the delete and a
        scoped page is clamped into range, so the follow-up view never points
        past the last page.
        """
        deleted = self.delete_alert(alert_id, user_id=user_id)
        if deleted is None:
            logger.debug("Menu delete of %s for user %s: already gone", alert_id, user_id)
        remaining = self._store.count_for_user(user_id)
        total_pages = pagination.page_count(remaining, self._renderer.page_size)
        if page is not None:
            page = pagination.clamp_page(page, total_pages)
        if remaining:
            menu = await self._renderer.render_delete_menu(user_id, page)
        else:
            menu = DeleteMenuView(action_buttons=[], page=page, page_count=total_pages)
        return DeleteOutcome(
            deleted=AlertOut.model_validate(deleted) if deleted is not None else None,
            page=page,
            page_count=total_pages,
            menu=menu,
        )

    def get_alerts_order(self, user_id: int) -> AlertsOrder:
        return self._store.get_alerts_order(user_id)

    def set_alerts_order(self, user_id: int, order: AlertsOrder | str) -> AlertsOrder:
        """Store whether new alerts are listed at the top or the bottom."""
        try:
            order = AlertsOrder(order)
        except ValueError as exc:
            raise InvalidAlertError(f"Unknown alerts order '{order}'") from exc
        return self._store.set_alerts_order(user_id, order)

    async def render_alerts_page(
        self, user_id: int, page: int = 0, *, fast: bool = True
    ) -> AlertsPageView:
        return await self._renderer.render_alerts_page(user_id, page, fast=fast)

    async def render_delete_menu(
        self, user_id: int, page: PageToken = None, *, fast: bool = True
    ) -> DeleteMenuView:
        return await self._renderer.render_delete_menu(user_id, page, fast=fast)

    def render_archive_page(
        self,
        user_id: int,
        *,
        days: int = 30,
        symbol: str | None = None,
        page: int = 0,
    ) -> ArchivePageView:
        return self._renderer.render_archive_page(user_id, days=days, symbol=symbol, page=page)
