"""KuCoin public market data: HTTP client, bulk ticker snapshot, per-symbol resolver."""
from crypto_alerts.providers.kucoin.client import KucoinClient
from crypto_alerts.providers.kucoin.resolver import SingleSymbolResolver
from crypto_alerts.providers.kucoin.snapshot import TickerMap, TickerSnapshot

__all__ = [
    "KucoinClient",
    "SingleSymbolResolver",
    "TickerMap",
    "TickerSnapshot",
]
