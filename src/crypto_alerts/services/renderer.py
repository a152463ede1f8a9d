"""Paginated alert listings and delete menus for the chat interface."""
import logging
from collections.abc import Mapping, Sequence
from datetime import timedelta

from crypto_alerts.db import (Alert, AlertArchive, AlertKind, AlertsOrder,
                              ArchiveReason, Condition, utcnow)
from crypto_alerts.errors import PersistenceError
from crypto_alerts.providers.core.utils import is_valid_price
from crypto_alerts.schemas import (AlertsPageView, ArchivePageView,
                                   ButtonRows, DeleteMenuView, InlineButton)
from crypto_alerts.services import pagination
from crypto_alerts.services.alert_store import AlertStore
from crypto_alerts.services.last_views import LastViewedPriceStore
from crypto_alerts.services.pagination import PageToken
from crypto_alerts.services.prices import PriceService
from crypto_alerts.services.reconcile import ViewReconciler
from crypto_alerts.utils import fmt_num, format_change, pad_label, truncate

logger = logging.getLogger(__name__)

ALERTS_TITLE = "📋 *Your alerts:*"
NO_ALERTS = "You have no active alerts."
ARCHIVE_TITLE = "📜 *Old alerts:*"
DELETE_MENU_LABEL = "❌ Delete pair № ..."
PREV_LABEL = "◀️ Previous"
NEXT_LABEL = "Next ▶️"
COLLAPSE_LABEL = "⬆️ Collapse"
SHOW_ALL_LABEL = "📂 Show all alerts"
BACK_LABEL = "↩️ Back"
MAX_BUTTON_LEN = 30


def _condition_text(condition: Condition) -> str:
    return "⬆️ when above" if condition == Condition.ABOVE else "⬇️ when below"


def percent_to_target(alert: Alert, current: float) -> float:
    """Distance left before the alert fires, as a percentage of the target."""
    if alert.condition == Condition.ABOVE:
        diff = alert.price - current
    else:
        diff = current - alert.price
    return diff / alert.price * 100


def format_alert_entry(
    alert: Alert,
    index: int,
    current: float | None,
    last_viewed: float | None,
) -> str:
    """Markdown block for one alert; ``index`` is its 0-based position in the full list."""
    sl_mark = " — 🛑 SL" if alert.is_stop_loss else ""
    kind = "🛑 SL" if alert.is_stop_loss else "🔔 Alert"
    condition = _condition_text(alert.condition)
    lines = [
        f"*{index + 1}. {alert.symbol}{sl_mark}*",
        f"Type: {kind}",
        f"Condition: {condition} *{fmt_num(alert.price)}*",
    ]
    current_line = f"Current: *{fmt_num(current)}*"
    if current is not None:
        current_line += f" (left {percent_to_target(alert, current):.2f}% {condition})"
    lines.append(current_line)
    if current is not None and is_valid_price(last_viewed):
        change = (current - last_viewed) / last_viewed * 100
        lines.append(f"From last view: {format_change(change)}")
    return "\n".join(lines) + "\n\n"


def format_delete_button(alert: Alert, index: int) -> str:
    arrow = "⬆" if alert.condition == Condition.ABOVE else "⬇"
    return truncate(f"❌ {index + 1}. {alert.symbol} {arrow} {fmt_num(alert.price)}", MAX_BUTTON_LEN)


def _nav_row(page: int, total_pages: int) -> list[InlineButton]:
    row = []
    if page > 0:
        row.append(InlineButton(text=PREV_LABEL, callback_data=pagination.alerts_page_data(page - 1)))
    if page < total_pages - 1:
        row.append(InlineButton(text=NEXT_LABEL, callback_data=pagination.alerts_page_data(page + 1)))
    return row


class AlertListRenderer:
    """Builds alert list pages and delete menus.

    With ``fast=True`` a view is built from fast prices (no blocking network
    call when the snapshot covers the symbols) and returned immediately,
    while the reconciler rebuilds it from authoritative prices in the
    background. With ``fast=False`` only the authoritative view is built.
    """

    def __init__(
        self,
        store: AlertStore,
        prices: PriceService,
        last_views: LastViewedPriceStore,
        reconciler: ViewReconciler,
        *,
        page_size: int = pagination.PAGE_SIZE,
    ) -> None:
        self._store = store
        self._prices = prices
        self._last_views = last_views
        self._reconciler = reconciler
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    def total_pages(self, user_id: int) -> int:
        return pagination.page_count(len(self._store.list_for_user(user_id)), self._page_size)

    # ---- shared plumbing ----

    async def _resolve(self, symbols: Sequence[str], fast: bool) -> dict[str, float]:
        if fast:
            return await self._prices.get_prices_fast(symbols)
        return await self._prices.get_prices(symbols)

    def _read_last_views(self, user_id: int) -> dict[str, float]:
        try:
            return self._last_views.get_for_user(user_id)
        except PersistenceError as exc:
            logger.warning("Last views unavailable for user %s: %s", user_id, exc)
            return {}

    def _order(self, user_id: int, order: AlertsOrder | None) -> AlertsOrder:
        if order is not None:
            return order
        try:
            return self._store.get_alerts_order(user_id)
        except PersistenceError as exc:
            logger.warning("Alerts order unavailable for user %s: %s", user_id, exc)
            return AlertsOrder.NEW_BOTTOM

    def _remember(self, user_id: int, prices: Mapping[str, float]) -> None:
        try:
            self._last_views.set_many(user_id, prices)
        except PersistenceError as exc:
            logger.warning("Could not store last views for user %s: %s", user_id, exc)

    # ---- alert list ----

    def build_alerts_page(
        self,
        alerts: Sequence[Alert],
        page: int,
        prices: Mapping[str, float],
        last_views: Mapping[str, float],
    ) -> AlertsPageView:
        """Render page ``page`` of ``alerts`` (clamped into range)."""
        if not alerts:
            return AlertsPageView(text=NO_ALERTS, page_buttons=[], page=0, page_count=1)
        total_pages = pagination.page_count(len(alerts), self._page_size)
        page = pagination.clamp_page(page, total_pages)
        start = page * self._page_size
        body = "".join(
            format_alert_entry(a, start + i, prices.get(a.symbol), last_views.get(a.symbol))
            for i, a in enumerate(pagination.page_slice(alerts, page, self._page_size))
        )
        text = f"{ALERTS_TITLE}\n\n{body}"
        buttons: ButtonRows = []
        if total_pages == 1:
            buttons.append([InlineButton(
                text=DELETE_MENU_LABEL,
                callback_data=pagination.show_delete_menu_data(0),
            )])
        else:
            text += f"Page *{page + 1}*/{total_pages}\n\n"
            nav = _nav_row(page, total_pages)
            if nav:
                buttons.append(nav)
            buttons.append([InlineButton(
                text=pad_label(DELETE_MENU_LABEL, MAX_BUTTON_LEN),
                callback_data=pagination.show_delete_menu_data(page),
            )])
        return AlertsPageView(text=text, page_buttons=buttons, page=page, page_count=total_pages)

    async def _alerts_page(
        self,
        user_id: int,
        page: int,
        order: AlertsOrder,
        last_views: Mapping[str, float],
        fast: bool,
    ) -> AlertsPageView:
        alerts = self._store.list_for_user(user_id, order)
        total_pages = pagination.page_count(len(alerts), self._page_size)
        on_page = pagination.page_slice(alerts, pagination.clamp_page(page, total_pages), self._page_size)
        prices = await self._resolve([a.symbol for a in on_page], fast)
        view = self.build_alerts_page(alerts, page, prices, last_views)
        self._remember(user_id, prices)
        return view

    async def render_alerts_page(
        self,
        user_id: int,
        page: int = 0,
        *,
        fast: bool = True,
        order: AlertsOrder | None = None,
    ) -> AlertsPageView:
        """Render one page of the user's alerts.

        ``order`` defaults to the user's stored preference.

        "From last view" compares against the prices stored before this
        render, for both the optimistic and the reconciled view.
        """
        generation = self._reconciler.begin(user_id)
        order = self._order(user_id, order)
        last_views = self._read_last_views(user_id)
        view = await self._alerts_page(user_id, page, order, last_views, fast)
        if fast and view.text != NO_ALERTS:
            self._reconciler.schedule(
                user_id,
                generation,
                "alerts_page",
                view,
                lambda: self._alerts_page(user_id, view.page, order, last_views, False),
            )
        return view

    # ---- delete menu ----

    def build_delete_menu(self, alerts: Sequence[Alert], page: PageToken) -> DeleteMenuView:
        """Delete buttons for one page (``page`` index) or every alert (``None``)."""
        if not alerts:
            return DeleteMenuView(action_buttons=[], page=page, page_count=1)
        total_pages = pagination.page_count(len(alerts), self._page_size)
        if page is not None:
            page = pagination.clamp_page(page, total_pages)
            start = page * self._page_size
            scoped = list(enumerate(pagination.page_slice(alerts, page, self._page_size), start))
        else:
            scoped = list(enumerate(alerts))

        rows: ButtonRows = [
            [InlineButton(
                text=format_delete_button(alert, idx),
                callback_data=pagination.delete_data(alert.id, page),
            )]
            for idx, alert in scoped
        ]
        if page is not None and total_pages > 1:
            nav = _nav_row(page, total_pages)
            if nav:
                rows.append(nav)
        rows.append([InlineButton(
            text=COLLAPSE_LABEL,
            callback_data=pagination.back_to_alerts_data(page),
        )])
        if len(scoped) < len(alerts):
            rows.append([InlineButton(
                text=SHOW_ALL_LABEL,
                callback_data=pagination.show_delete_menu_data(None),
            )])
        return DeleteMenuView(action_buttons=rows, page=page, page_count=total_pages)

    async def _delete_menu(
        self, user_id: int, page: PageToken, order: AlertsOrder, fast: bool
    ) -> DeleteMenuView:
        alerts = self._store.list_for_user(user_id, order)
        view = self.build_delete_menu(alerts, page)
        if page is None:
            shown = alerts
        else:
            shown = pagination.page_slice(alerts, view.page, self._page_size)
        prices = await self._resolve([a.symbol for a in shown], fast)
        self._remember(user_id, prices)
        return view

    async def render_delete_menu(
        self,
        user_id: int,
        page: PageToken = None,
        *,
        fast: bool = True,
        order: AlertsOrder | None = None,
    ) -> DeleteMenuView:
        """Render the delete-action keyboard for one page or for all alerts."""
        generation = self._reconciler.begin(user_id)
        order = self._order(user_id, order)
        view = await self._delete_menu(user_id, page, order, fast)
        if fast and view.action_buttons:
            self._reconciler.schedule(
                user_id,
                generation,
                "delete_menu",
                view,
                lambda: self._delete_menu(user_id, view.page, order, False),
            )
        return view

    # ---- archive ----

    @staticmethod
    def format_archive_entry(entry: AlertArchive, index: int) -> str:
        kind = "🛑 SL" if entry.kind == AlertKind.STOP_LOSS else "🔔 Alert"
        fired = entry.reason == ArchiveReason.TRIGGERED
        status = "✅ Fired" if fired else "🗑️ Deleted"
        when = entry.fired_at or entry.deleted_at or entry.archived_at
        lines = [
            f"*{index + 1}. {entry.symbol}* — {kind}",
            f"Condition: {_condition_text(entry.condition)} *{fmt_num(entry.price)}*",
            f"Status: {status}",
            f"Time: {when:%Y-%m-%d %H:%M} UTC",
        ]
        if fired and entry.fired_price is not None:
            lines.append(f"Price when fired: *{fmt_num(entry.fired_price)}*")
        if not fired:
            lines.append(f"Reason of deletion: {entry.reason.value}")
        return "\n".join(lines) + "\n\n"

    def render_archive_page(
        self,
        user_id: int,
        *,
        days: int = 30,
        symbol: str | None = None,
        page: int = 0,
    ) -> ArchivePageView:
        """Paginated listing of alerts that fired or were deleted in the last ``days``."""
        days = max(1, days)
        since = utcnow() - timedelta(days=days)
        entries = self._store.list_archive(user_id, since, symbol)
        back = [[InlineButton(text=BACK_LABEL, callback_data="back_to_main")]]
        if not entries:
            scope = f" for *{symbol.upper()}*" if symbol else ""
            return ArchivePageView(
                text=f"No old alerts{scope} in the selected period.",
                page_buttons=back,
            )
        total_pages = pagination.page_count(len(entries), self._page_size)
        page = pagination.clamp_page(page, total_pages)
        start = page * self._page_size
        body = "".join(
            self.format_archive_entry(e, start + i)
            for i, e in enumerate(pagination.page_slice(entries, page, self._page_size))
        )
        text = f"{ARCHIVE_TITLE}\n\n{body}Page *{page + 1}*/{total_pages}\n\n"
        token = pagination.archive_token(days, symbol)
        buttons: ButtonRows = []
        nav = []
        if page > 0:
            nav.append(InlineButton(text=PREV_LABEL, callback_data=pagination.archive_page_data(page - 1, token)))
        if page < total_pages - 1:
            nav.append(InlineButton(text=NEXT_LABEL, callback_data=pagination.archive_page_data(page + 1, token)))
        if nav:
            buttons.append(nav)
        buttons.extend(back)
        return ArchivePageView(text=text, page_buttons=buttons, page=page, page_count=total_pages)
