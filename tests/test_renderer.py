"""
Tests for AlertListRenderer
===========================

Alert pages, delete menus, the archive view and the optimistic render
followed by a background reconcile.
"""
import pytest

from conftest import make_alert
from crypto_alerts.db import AlertsOrder, ArchiveReason, Condition
from crypto_alerts.services.renderer import (NO_ALERTS, format_alert_entry,
                                             format_delete_button)


def _seed(store, count: int, user_id: int = 1, symbol: str = "BTC-USDT"):
    return [
        store.create(make_alert(user_id, symbol, Condition.ABOVE, 60000 + i, seq=i))
        for i in range(count)
    ]


def _callbacks(rows):
    return [[b.callback_data for b in row] for row in rows]


class TestEntryFormatting:
    def test_entry_with_last_view(self):
        alert = make_alert(1, "BTC-USDT", Condition.ABOVE, 60000)
        text = format_alert_entry(alert, 0, 50500.0, 50000.0)

        assert text == (
            "*1. BTC-USDT*\n"
            "Type: 🔔 Alert\n"
            "Condition: ⬆️ when above *60000*\n"
            "Current: *50500* (left 15.83% ⬆️ when above)\n"
            "From last view: +1.00% 📈\n\n"
        )

    def test_entry_without_price(self):
        alert = make_alert(1, "PEPE-USDT", Condition.BELOW, 0.00001)
        text = format_alert_entry(alert, 4, None, 0.00002)

        assert "*5. PEPE-USDT*" in text
        assert "Current: *—*\n" in text
        assert "From last view" not in text

    def test_stop_loss_marker(self):
        from crypto_alerts.db import AlertKind

        alert = make_alert(1, "ETH-USDT", Condition.BELOW, 2500)
        alert.kind = AlertKind.STOP_LOSS
        text = format_alert_entry(alert, 1, 2600.0, None)

        assert text.startswith("*2. ETH-USDT — 🛑 SL*")
        assert "Type: 🛑 SL" in text

    def test_delete_button_truncated(self):
        alert = make_alert(1, "SUPERLONGNAMETOKEN-USDT", Condition.BELOW, 0.000012345)
        label = format_delete_button(alert, 11)

        assert len(label) == 30
        assert label.startswith("❌ 12. SUPERLONGNAMETOKEN-USDT")
        assert label.endswith("…")


class TestAlertsPage:
    """Tests for render_alerts_page."""

    @pytest.mark.asyncio
    async def test_empty(self, renderer):
        view = await renderer.render_alerts_page(1, fast=False)

        assert view.text == NO_ALERTS
        assert view.page_buttons == []

    @pytest.mark.asyncio
    async def test_single_page(self, renderer, store):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 60000))

        view = await renderer.render_alerts_page(1, fast=False)

        assert view.text.startswith("📋 *Your alerts:*\n\n*1. BTC-USDT*")
        assert "Current: *50500* (left 15.83% ⬆️ when above)" in view.text
        assert "Page *" not in view.text
        assert _callbacks(view.page_buttons) == [["show_delete_menu_0"]]

    @pytest.mark.asyncio
    async def test_records_last_view(self, renderer, store, last_views):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 60000))
        last_views.set_many(1, {"BTC-USDT": 50000.0})

        view = await renderer.render_alerts_page(1, fast=False)

        assert "From last view: +1.00% 📈" in view.text
        assert last_views.get_for_user(1) == {"BTC-USDT": 50500.0}

    @pytest.mark.asyncio
    async def test_multi_page_navigation(self, renderer, store):
        _seed(store, 25)

        first = await renderer.render_alerts_page(1, 0, fast=False)
        second = await renderer.render_alerts_page(1, 1, fast=False)

        assert "Page *1*/2" in first.text
        assert first.text.count("Type: ") == 20
        assert _callbacks(first.page_buttons) == [["alerts_page_1_view"], ["show_delete_menu_0"]]
        assert len(first.page_buttons[1][0].text) == 30

        assert "Page *2*/2" in second.text
        assert "*21. BTC-USDT*" in second.text
        assert "*1. BTC-USDT*" not in second.text
        assert second.text.count("Type: ") == 5
        assert _callbacks(second.page_buttons) == [["alerts_page_0_view"], ["show_delete_menu_1"]]

    @pytest.mark.asyncio
    async def test_page_out_of_range_is_clamped(self, renderer, store):
        _seed(store, 25)

        view = await renderer.render_alerts_page(1, 7, fast=False)

        assert view.page == 1
        assert view.page_count == 2

    @pytest.mark.asyncio
    async def test_only_current_page_symbols_resolved(self, renderer, store, market):
        _seed(store, 20, symbol="BTC-USDT")
        store.create(make_alert(1, "PEPE-USDT", Condition.ABOVE, 1, seq=99))

        await renderer.render_alerts_page(1, 0, fast=False)

        assert market.level1_calls == []


class TestOptimisticRender:
    """Tests for the fast render and its reconcile pass."""

    @pytest.mark.asyncio
    async def test_reconcile_publishes_corrected_view(self, renderer, store, reconciler, published, prices):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 60000))

        # Snapshot never refreshed and no level-1 price: the fast view has no price.
        view = await renderer.render_alerts_page(1, fast=True)
        await reconciler.drain()
        await prices.stop()

        assert "Current: *—*" in view.text
        assert len(published) == 1
        update = published[0]
        assert update.user_id == 1
        assert update.view_kind == "alerts_page"
        assert "Current: *50500*" in update.view.text

    @pytest.mark.asyncio
    async def test_reconcile_matching_view_is_not_published(
        self, renderer, store, snapshot, last_views, reconciler, published
    ):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 60000))
        last_views.set_many(1, {"BTC-USDT": 50000.0})
        await snapshot.refresh()

        view = await renderer.render_alerts_page(1, fast=True)
        await reconciler.drain()

        # Both passes compare against the last view taken before this render.
        assert "From last view: +1.00% 📈" in view.text
        assert published == []

    @pytest.mark.asyncio
    async def test_empty_list_schedules_nothing(self, renderer, reconciler, published):
        await renderer.render_alerts_page(1, fast=True)
        await reconciler.drain()

        assert published == []


class TestDeleteMenu:
    """Tests for render_delete_menu."""

    @pytest.mark.asyncio
    async def test_unscoped_menu(self, renderer, store):
        alerts = _seed(store, 3)

        menu = await renderer.render_delete_menu(1, None, fast=False)

        assert menu.page is None
        assert _callbacks(menu.action_buttons) == [
            [f"del_{alerts[0].id}_pall"],
            [f"del_{alerts[1].id}_pall"],
            [f"del_{alerts[2].id}_pall"],
            ["back_to_alerts"],
        ]
        assert menu.action_buttons[0][0].text == "❌ 1. BTC-USDT ⬆ 60000"

    @pytest.mark.asyncio
    async def test_scoped_menu_with_several_pages(self, renderer, store):
        alerts = _seed(store, 25)

        menu = await renderer.render_delete_menu(1, 1, fast=False)

        callbacks = _callbacks(menu.action_buttons)
        assert callbacks[:5] == [[f"del_{a.id}_p1"] for a in alerts[20:]]
        assert callbacks[5:] == [
            ["alerts_page_0_view"],
            ["back_to_alerts_p1"],
            ["show_delete_menu_all"],
        ]
        assert menu.action_buttons[0][0].text.startswith("❌ 21. ")

    @pytest.mark.asyncio
    async def test_scoped_single_page_has_no_navigation(self, renderer, store):
        _seed(store, 2)

        menu = await renderer.render_delete_menu(1, 0, fast=False)

        assert _callbacks(menu.action_buttons)[-1] == ["back_to_alerts_p0"]
        assert len(menu.action_buttons) == 3

    @pytest.mark.asyncio
    async def test_fast_menu_reconciles_quietly(self, renderer, store, reconciler, published, prices):
        _seed(store, 2)

        await renderer.render_delete_menu(1, 0, fast=True)
        await reconciler.drain()
        await prices.stop()

        # Labels do not depend on prices, so the authoritative pass matches.
        assert published == []


class TestAlertsOrder:
    """The stored per-user order applies to the list and the delete menu."""

    @pytest.mark.asyncio
    async def test_new_top_lists_newest_first(self, renderer, store):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 60000, seq=0))
        store.create(make_alert(1, "ETH-USDT", Condition.ABOVE, 3500, seq=1))
        store.set_alerts_order(1, AlertsOrder.NEW_TOP)

        view = await renderer.render_alerts_page(1, fast=False)

        assert "*1. ETH-USDT*" in view.text
        assert "*2. BTC-USDT*" in view.text

    @pytest.mark.asyncio
    async def test_new_top_applies_to_delete_menu(self, renderer, store):
        alerts = _seed(store, 3)
        store.set_alerts_order(1, AlertsOrder.NEW_TOP)

        menu = await renderer.render_delete_menu(1, None, fast=False)

        assert [row[0].callback_data for row in menu.action_buttons[:3]] == [
            f"del_{a.id}_pall" for a in reversed(alerts)
        ]

    @pytest.mark.asyncio
    async def test_explicit_order_overrides_preference(self, renderer, store):
        alerts = _seed(store, 2)
        store.set_alerts_order(1, AlertsOrder.NEW_TOP)

        menu = await renderer.render_delete_menu(1, None, fast=False, order=AlertsOrder.NEW_BOTTOM)

        assert menu.action_buttons[0][0].callback_data == f"del_{alerts[0].id}_pall"


class TestArchivePage:
    def test_lists_fired_and_deleted(self, renderer, store):
        fired, deleted = _seed(store, 2)
        store.delete(deleted.id)
        store.delete(fired.id, ArchiveReason.TRIGGERED, fired_price=60123.0)

        view = renderer.render_archive_page(1)

        assert view.text.startswith("📜 *Old alerts:*")
        assert "✅ Fired" in view.text
        assert "Price when fired: *60123*" in view.text
        assert "🗑️ Deleted" in view.text
        assert "Reason of deletion: user_deleted" in view.text
        assert _callbacks(view.page_buttons) == [["back_to_main"]]

    def test_empty_with_symbol(self, renderer):
        view = renderer.render_archive_page(1, symbol="btc")

        assert view.text == "No old alerts for *BTC* in the selected period."

    def test_paginated(self, renderer, store):
        for alert in _seed(store, 22):
            store.delete(alert.id)

        view = renderer.render_archive_page(1, days=7, page=0)

        assert "Page *1*/2" in view.text
        assert _callbacks(view.page_buttons)[0] == ["old_alerts_page_1_view_d7_q"]
