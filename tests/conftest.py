"""
Pytest Configuration
====================

Shared fixtures: in-memory database, fake market data, fake notifier and a
controllable clock.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import SQLModel

from crypto_alerts.db import Alert, Condition, create_db_engine, init_db
from crypto_alerts.errors import RecipientBlockedError, UpstreamError
from crypto_alerts.providers.kucoin.models import TickerItem
from crypto_alerts.providers.kucoin.resolver import SingleSymbolResolver
from crypto_alerts.providers.kucoin.snapshot import TickerSnapshot
from crypto_alerts.services.alert_store import AlertStore
from crypto_alerts.services.last_views import LastViewedPriceStore
from crypto_alerts.services.prices import PriceService
from crypto_alerts.services.reconcile import ViewReconciler
from crypto_alerts.services.renderer import AlertListRenderer


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMarketClient:
    """In-memory MarketDataClient counting upstream calls."""

    def __init__(
        self,
        tickers: dict[str, str | None] | None = None,
        level1: dict[str, float | None] | None = None,
    ) -> None:
        self.tickers = dict(tickers or {})
        self.level1 = dict(level1 or {})
        self.ticker_calls = 0
        self.level1_calls: list[str] = []
        self.fail_tickers = False
        self.fail_level1: set[str] = set()
        self.gate = None  # optional asyncio.Event awaited by level-1 lookups

    async def get_all_tickers(self) -> list[TickerItem]:
        self.ticker_calls += 1
        if self.fail_tickers:
            raise UpstreamError("tickers down")
        return [TickerItem(symbol=s, last=p) for s, p in self.tickers.items()]

    async def get_level1_price(self, symbol: str) -> float | None:
        self.level1_calls.append(symbol)
        if self.gate is not None:
            await self.gate.wait()
        if symbol in self.fail_level1:
            raise UpstreamError(f"level1 down for {symbol}")
        return self.level1.get(symbol)

    async def close(self) -> None:
        pass


class FakeNotifier:
    """Records sent messages; can simulate users who blocked the bot."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []
        self.blocked: set[int] = set()

    async def send_message(self, user_id: int, text: str) -> None:
        if user_id in self.blocked:
            raise RecipientBlockedError(f"User {user_id} blocked the bot")
        self.sent.append((user_id, text))

    async def close(self) -> None:
        pass


def make_alert(
    user_id: int,
    symbol: str,
    condition: Condition = Condition.ABOVE,
    price: float = 100.0,
    seq: int = 0,
) -> Alert:
    """Alert with a deterministic creation time so list order is stable."""
    return Alert(
        user_id=user_id,
        symbol=symbol,
        condition=condition,
        price=price,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=seq),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across sessions (StaticPool)."""
    eng = create_db_engine("sqlite://")
    init_db(eng)
    yield eng
    SQLModel.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def store(engine, clock):
    return AlertStore(engine, cache_ttl=20.0, clock=clock)


@pytest.fixture
def last_views(engine, clock):
    return LastViewedPriceStore(engine, cache_ttl=20.0, clock=clock)


@pytest.fixture
def market():
    return FakeMarketClient(
        tickers={"BTC-USDT": "50500", "ETH-USDT": "3000", "SOL-USDT": "150"},
        level1={"PEPE-USDT": 0.0000123},
    )


@pytest.fixture
def snapshot(market, clock):
    return TickerSnapshot(market, ttl=55.0, clock=clock)


@pytest.fixture
def resolver(market, clock):
    return SingleSymbolResolver(market, ttl=20.0, clock=clock)


@pytest.fixture
def prices(snapshot, resolver):
    return PriceService(snapshot, resolver, batch_size=8)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def published():
    """Views published by the reconciler, in order."""
    return []


@pytest.fixture
def reconciler(published):
    async def publish(update):
        published.append(update)

    return ViewReconciler(publish)


@pytest.fixture
def renderer(store, prices, last_views, reconciler):
    return AlertListRenderer(store, prices, last_views, reconciler, page_size=20)
