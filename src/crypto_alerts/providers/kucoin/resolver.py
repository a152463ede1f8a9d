"""Per-symbol price lookup for symbols missing from the ticker snapshot."""
import logging
import time
from collections.abc import Callable

from crypto_alerts.providers.core.protocols import MarketDataClient
from crypto_alerts.providers.core.singleflight import SingleFlight

logger = logging.getLogger(__name__)


class SingleSymbolResolver:
    """Resolves one symbol's price via the level-1 order book endpoint.

    Results are cached for a short TTL. Concurrent lookups for the same
    symbol share a single upstream call. Failures resolve to None and are
    not cached, so the next lookup tries again.
    """

    def __init__(
        self,
        client: MarketDataClient,
        ttl: float = 20.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize resolver.

        Args:
            client: Upstream client providing get_level1_price().
            ttl: Seconds a resolved price is served from cache.
            clock: Monotonic time source (injectable for tests).
        """
        self._client = client
        self._ttl = ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, float]] = {}  # symbol -> (price, fetched_at)
        self._flight: SingleFlight[float | None] = SingleFlight()

    def cached(self, symbol: str) -> float | None:
        """Cached price if still within TTL, else None. Never touches the network."""
        entry = self._cache.get(symbol)
        if entry is None:
            return None
        price, fetched_at = entry
        if self._clock() - fetched_at >= self._ttl:
            return None
        return price

    def is_in_flight(self, symbol: str) -> bool:
        return symbol in self._flight

    async def resolve(self, symbol: str) -> float | None:
        """Return the price for ``symbol``, or None if it cannot be resolved now."""
        price = self.cached(symbol)
        if price is not None:
            return price
        return await self._flight.do(symbol, lambda: self._fetch(symbol))

    async def _fetch(self, symbol: str) -> float | None:
        try:
            price = await self._client.get_level1_price(symbol)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Level-1 price lookup failed for %s: %s", symbol, exc)
            return None
        if price is None:
            return None
        self._cache[symbol] = (price, self._clock())
        return price
