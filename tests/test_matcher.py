"""
Tests for AlertMatcher
======================

Fire-once semantics, skip-on-unresolved and per-alert fault isolation.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from conftest import make_alert
from crypto_alerts.db import ArchiveReason, Condition
from crypto_alerts.services.matcher import AlertMatcher, format_fired_message


class StubPrices:
    """PriceService stand-in returning fixed authoritative prices."""

    def __init__(self, prices: dict[str, float], before_return=None) -> None:
        self.prices = prices
        self.before_return = before_return
        self.requested: list[list[str]] = []

    async def get_prices(self, symbols):
        symbols = list(symbols)
        self.requested.append(symbols)
        if self.before_return is not None:
            self.before_return()
        return {s: self.prices[s] for s in symbols if s in self.prices}


class TestFiredMessage:
    def test_alert_message(self):
        alert = make_alert(1, "BTC-USDT", Condition.ABOVE, 50000)
        text = format_fired_message(alert, 50500.0)
        assert text.startswith("🔔 *Alert triggered!*")
        assert "*BTC-USDT*" in text
        assert "⬆️ above *50000*" in text
        assert "*50500*" in text


class TestAlertMatcher:
    """Tests for a single matcher tick."""

    @pytest.mark.asyncio
    async def test_fires_and_archives(self, store, notifier, engine):
        alert = store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        matcher = AlertMatcher(store, StubPrices({"BTC-USDT": 50500.0}), notifier)

        report = await matcher.tick()

        assert report.fired == 1
        assert len(notifier.sent) == 1
        assert notifier.sent[0][0] == 1
        assert store.list_for_user(1) == []
        archived = store.list_archive(1, alert.created_at)
        assert [(a.alert_id, a.reason, a.fired_price) for a in archived] == [
            (alert.id, ArchiveReason.TRIGGERED, 50500.0)
        ]

    @pytest.mark.asyncio
    async def test_condition_not_met_keeps_alert(self, store, notifier):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        matcher = AlertMatcher(store, StubPrices({"BTC-USDT": 49000.0}), notifier)

        report = await matcher.tick()

        assert report.fired == 0
        assert notifier.sent == []
        assert len(store.list_for_user(1)) == 1

    @pytest.mark.asyncio
    async def test_touching_target_does_not_fire(self, store, notifier):
        store.create(make_alert(1, "BTC-USDT", Condition.BELOW, 50000))
        matcher = AlertMatcher(store, StubPrices({"BTC-USDT": 50000.0}), notifier)

        assert (await matcher.tick()).fired == 0

    @pytest.mark.asyncio
    async def test_unresolved_price_is_skipped(self, store, notifier):
        store.create(make_alert(1, "PEPE-USDT", Condition.ABOVE, 0.00001))
        matcher = AlertMatcher(store, StubPrices({}), notifier)

        report = await matcher.tick()

        assert report.unresolved == 1
        assert report.fired == 0
        assert len(store.list_for_user(1)) == 1

    @pytest.mark.asyncio
    async def test_stop_loss_fires_independently(self, store, notifier):
        alert, stop_loss = store.create_paired(
            make_alert(1, "ETH-USDT", Condition.ABOVE, 3500),
            make_alert(1, "ETH-USDT", Condition.BELOW, 2500),
        )
        matcher = AlertMatcher(store, StubPrices({"ETH-USDT": 2400.0}), notifier)

        report = await matcher.tick()

        assert report.fired == 1
        assert [a.id for a in store.list_for_user(1)] == [alert.id]
        assert notifier.sent[0][1].startswith("🛑 *Stop-loss triggered!*")
        assert stop_loss.group_id == alert.group_id

    @pytest.mark.asyncio
    async def test_manual_delete_during_tick_prevents_firing(self, store, notifier, engine):
        alert = store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        prices = StubPrices(
            {"BTC-USDT": 50500.0},
            before_return=lambda: store.delete(alert.id, user_id=1),
        )
        matcher = AlertMatcher(store, prices, notifier)

        report = await matcher.tick()

        assert report.fired == 0
        assert report.already_gone == 1
        assert notifier.sent == []
        archived = store.list_archive(1, alert.created_at)
        assert [a.reason for a in archived] == [ArchiveReason.USER_DELETED]

    @pytest.mark.asyncio
    async def test_overlapping_ticks_fire_once(self, store, notifier):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        matcher = AlertMatcher(store, StubPrices({"BTC-USDT": 50500.0}), notifier)

        reports = await asyncio.gather(matcher.tick(), matcher.tick())

        assert sum(r.fired for r in reports) == 1
        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_one_failing_alert_does_not_abort_tick(self, store, notifier):
        first = store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        store.create(make_alert(2, "ETH-USDT", Condition.ABOVE, 2000, seq=1))

        class FlakyNotifier:
            sent = []

            async def send_message(self, user_id, text):
                if user_id == 1:
                    raise RuntimeError("transport exploded")
                self.sent.append((user_id, text))

        flaky = FlakyNotifier()
        matcher = AlertMatcher(
            store, StubPrices({"BTC-USDT": 50500.0, "ETH-USDT": 3000.0}), flaky
        )

        report = await matcher.tick()

        assert report.failed == 1
        assert report.fired == 1
        assert [u for u, _ in flaky.sent] == [2]
        assert store.get(first.id) is None

    @pytest.mark.asyncio
    async def test_blocked_user_alerts_are_purged(self, store, notifier):
        store.create(make_alert(7, "BTC-USDT", Condition.ABOVE, 50000))
        store.create(make_alert(7, "ETH-USDT", Condition.ABOVE, 9999, seq=1))
        store.create(make_alert(8, "BTC-USDT", Condition.ABOVE, 50000, seq=2))
        notifier.blocked.add(7)
        matcher = AlertMatcher(
            store, StubPrices({"BTC-USDT": 50500.0, "ETH-USDT": 3000.0}), notifier
        )

        report = await matcher.tick()

        assert store.list_for_user(7) == []
        assert [u for u, _ in notifier.sent] == [8]
        assert report.fired == 1
        assert report.blocked == 1
        archived = store.list_archive(7, datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert [a.reason for a in archived] == [ArchiveReason.BOT_BLOCKED] * 2
        assert all(a.fired_at is None and a.fired_price is None for a in archived)

    @pytest.mark.asyncio
    async def test_stale_snapshot_never_fires(self, store, notifier, prices, snapshot, market, clock):
        await snapshot.refresh()
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        clock.advance(3600)
        market.fail_tickers = True
        market.fail_level1.add("BTC-USDT")

        report = await AlertMatcher(store, prices, notifier).tick()

        assert report.unresolved == 1
        assert report.fired == 0
        assert notifier.sent == []
        assert len(store.list_for_user(1)) == 1

    @pytest.mark.asyncio
    async def test_stale_snapshot_falls_back_to_level1(self, store, notifier, prices, snapshot, market, clock):
        await snapshot.refresh()
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        clock.advance(3600)
        market.fail_tickers = True
        market.level1["BTC-USDT"] = 49000.0

        report = await AlertMatcher(store, prices, notifier).tick()

        assert report.fired == 0
        assert market.level1_calls == ["BTC-USDT"]

    @pytest.mark.asyncio
    async def test_empty_store_skips_price_lookup(self, store, notifier):
        prices = StubPrices({})
        report = await AlertMatcher(store, prices, notifier).tick()

        assert report.checked == 0
        assert prices.requested == []


class TestMatcherLoop:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, notifier):
        store.create(make_alert(1, "BTC-USDT", Condition.ABOVE, 50000))
        matcher = AlertMatcher(
            store, StubPrices({"BTC-USDT": 50500.0}), notifier, interval=0.01
        )

        matcher.start()
        for _ in range(100):
            if notifier.sent:
                break
            await asyncio.sleep(0.01)
        await matcher.stop()

        assert len(notifier.sent) == 1
