"""Bulk ticker snapshot: symbol -> last price, refreshed at most once per TTL."""
import asyncio
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from crypto_alerts.providers.core.protocols import MarketDataClient
from crypto_alerts.providers.core.singleflight import SingleFlight
from crypto_alerts.providers.core.utils import parse_price

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, float] = MappingProxyType({})


@dataclass(frozen=True)
class TickerMap:
    """Immutable view of one refresh cycle's prices.

    ``fetched_at`` is the clock reading of the refresh that produced the map;
    None until the first successful refresh.
    """

    prices: Mapping[str, float] = field(default_factory=lambda: _EMPTY)
    fetched_at: float | None = None

    def __contains__(self, symbol: object) -> bool:
        return symbol in self.prices

    def __len__(self) -> int:
        return len(self.prices)

    def get(self, symbol: str) -> float | None:
        return self.prices.get(symbol)

    def age(self, now: float) -> float:
        """Seconds since the refresh; infinite if never refreshed."""
        return math.inf if self.fetched_at is None else now - self.fetched_at


class TickerSnapshot:
    """Cache of the exchange's full ticker list.

    The map is replaced as a whole on every successful refresh, so a reader
    holding a TickerMap never sees prices from two refresh cycles. A failed
    refresh keeps the previous map: stale but available for display, never
    authoritative.
    """

    _FLIGHT_KEY = "allTickers"

    def __init__(
        self,
        client: MarketDataClient,
        ttl: float = 55.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the snapshot.

        Args:
            client: Upstream client providing get_all_tickers().
            ttl: Seconds a refreshed map is served without a network call.
            clock: Monotonic time source (injectable for tests).
        """
        self._client = client
        self._ttl = ttl
        self._clock = clock
        self._state = TickerMap()
        self._flight: SingleFlight[TickerMap] = SingleFlight()

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def current(self) -> TickerMap:
        """The latest map, without triggering a refresh."""
        return self._state

    def age(self) -> float:
        return self._state.age(self._clock())

    def is_fresh(self) -> bool:
        return bool(self._state.prices) and self.age() < self._ttl

    def is_expired(self, state: TickerMap) -> bool:
        """True when ``state`` is past the TTL, e.g. kept after a failed refresh."""
        return state.age(self._clock()) >= self._ttl

    async def refresh(self) -> TickerMap:
        """Return the current map, fetching a new one if it is past its TTL.

        Concurrent callers share one upstream call.
        """
        if self.is_fresh():
            return self._state
        return await self._flight.do(self._FLIGHT_KEY, self._fetch)

    async def _fetch(self) -> TickerMap:
        try:
            items = await self._client.get_all_tickers()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Ticker snapshot refresh failed, keeping previous map: %s", exc)
            return self._state

        prices: dict[str, float] = {}
        for item in items:
            price = parse_price(item.last)
            if item.symbol and price is not None:
                prices[item.symbol] = price
        self._state = TickerMap(MappingProxyType(prices), self._clock())
        logger.debug("Ticker snapshot refreshed: %d symbols", len(prices))
        return self._state

    async def run_refresher(self, interval: float, stop_event: asyncio.Event) -> None:
        """Refresh now and then every ``interval`` seconds until ``stop_event`` is set."""
        while not stop_event.is_set():
            try:
                await self.refresh()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Scheduled ticker refresh failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
