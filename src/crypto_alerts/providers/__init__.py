"""Market data providers feeding the price cache.

- KucoinClient: retried HTTP calls to the exchange's public endpoints
- TickerSnapshot: bulk symbol -> price map, refreshed at most once per TTL
- SingleSymbolResolver: coalesced, briefly cached per-symbol fallback

Example:
    async with KucoinClient() as client:
        snapshot = TickerSnapshot(client)
        prices = await snapshot.refresh()
        print(prices.get("BTC-USDT"))
"""
from crypto_alerts.providers.core import MarketDataClient, SingleFlight
from crypto_alerts.providers.kucoin import (KucoinClient, SingleSymbolResolver,
                                            TickerMap, TickerSnapshot)

__all__ = [
    "KucoinClient",
    "MarketDataClient",
    "SingleFlight",
    "SingleSymbolResolver",
    "TickerMap",
    "TickerSnapshot",
]
