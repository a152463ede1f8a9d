"""Price layer: snapshot fast path with per-symbol fallback."""
import asyncio
import logging
from collections.abc import Iterable

from crypto_alerts.providers.kucoin.resolver import SingleSymbolResolver
from crypto_alerts.providers.kucoin.snapshot import TickerMap, TickerSnapshot

logger = logging.getLogger(__name__)


class PriceService:
    """Combines the bulk ticker snapshot and the single-symbol resolver.

    Two flavours of lookup:

    - fast (``get_price_fast``/``get_prices_fast``): serve from the snapshot
      when it holds the symbol and is at most 2x TTL old, scheduling a
      background refresh once it is past 1x TTL. Used by interactive renders.
    - authoritative (``get_price``/``get_prices``): refresh the snapshot
      (within its TTL this is free) and resolve anything it lacks. A map
      still past its TTL after the refresh (upstream down) is ignored, so
      an old price is never reported as current.
    """

    def __init__(
        self,
        snapshot: TickerSnapshot,
        resolver: SingleSymbolResolver,
        *,
        batch_size: int = 8,
        refresh_interval: float = 60.0,
    ) -> None:
        """Initialize the price service.

        Args:
            snapshot: Bulk ticker snapshot.
            resolver: Per-symbol fallback.
            batch_size: Concurrent single-symbol lookups per batch.
            refresh_interval: Seconds between background snapshot refreshes.
        """
        self._snapshot = snapshot
        self._resolver = resolver
        self._batch_size = batch_size
        self._refresh_interval = refresh_interval
        self._background: set[asyncio.Task] = set()
        self._stop_event: asyncio.Event | None = None
        self._refresher: asyncio.Task | None = None

    @property
    def snapshot(self) -> TickerSnapshot:
        return self._snapshot

    @property
    def resolver(self) -> SingleSymbolResolver:
        return self._resolver

    def _refresh_in_background(self) -> None:
        task = asyncio.create_task(self._snapshot.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _from_snapshot_fast(self, symbol: str) -> float | None:
        ttl = self._snapshot.ttl
        state = self._snapshot.current
        price = state.get(symbol)
        if price is None:
            return None
        age = self._snapshot.age()
        if age >= 2 * ttl:
            return None
        if age >= ttl:
            self._refresh_in_background()
        return price

    async def get_price_fast(self, symbol: str) -> float | None:
        """Best-effort price that avoids blocking on network I/O when possible."""
        price = self._from_snapshot_fast(symbol)
        if price is not None:
            return price
        price = await self._resolver.resolve(symbol)
        if not self._snapshot.is_fresh():
            self._refresh_in_background()
        return price

    async def get_prices_fast(self, symbols: Iterable[str]) -> dict[str, float]:
        """Fast prices for several symbols; unresolved symbols are omitted."""
        unique = list(dict.fromkeys(symbols))
        results = await asyncio.gather(*(self.get_price_fast(s) for s in unique))
        return {s: p for s, p in zip(unique, results) if p is not None}

    async def _authoritative_map(self) -> TickerMap:
        state = await self._snapshot.refresh()
        if self._snapshot.is_expired(state):
            logger.warning(
                "Ticker snapshot is past its TTL after refresh, resolving symbols one by one"
            )
            return TickerMap()
        return state

    async def get_price(self, symbol: str) -> float | None:
        """Authoritative price: refreshed snapshot first, then the resolver."""
        state = await self._authoritative_map()
        price = state.get(symbol)
        if price is not None:
            return price
        return await self._resolver.resolve(symbol)

    async def get_prices(self, symbols: Iterable[str]) -> dict[str, float]:
        """Authoritative prices for several symbols; unresolved ones are omitted.

        Symbols present in the refreshed snapshot cost nothing. The rest are
        looked up in fixed-size batches: concurrent within a batch,
        sequential across batches, to bound simultaneous upstream load.
        """
        unique = list(dict.fromkeys(symbols))
        if not unique:
            return {}
        state = await self._authoritative_map()
        prices: dict[str, float] = {}
        missing: list[str] = []
        for symbol in unique:
            price = state.get(symbol)
            if price is not None:
                prices[symbol] = price
            else:
                missing.append(symbol)

        for i in range(0, len(missing), self._batch_size):
            chunk = missing[i:i + self._batch_size]
            results = await asyncio.gather(*(self._resolver.resolve(s) for s in chunk))
            for symbol, price in zip(chunk, results):
                if price is not None:
                    prices[symbol] = price
        if missing:
            logger.debug(
                "Resolved %d/%d symbols missing from snapshot",
                sum(1 for s in missing if s in prices), len(missing),
            )
        return prices

    def start(self) -> None:
        """Start the periodic snapshot refresher."""
        if self._refresher is not None:
            return
        self._stop_event = asyncio.Event()
        self._refresher = asyncio.create_task(
            self._snapshot.run_refresher(self._refresh_interval, self._stop_event)
        )

    async def stop(self) -> None:
        """Stop the refresher and wait for outstanding background refreshes."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._refresher is not None:
            await self._refresher
            self._refresher = None
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
