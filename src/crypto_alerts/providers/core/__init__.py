"""Core provider abstractions."""
from crypto_alerts.providers.core.protocols import MarketDataClient
from crypto_alerts.providers.core.singleflight import SingleFlight
from crypto_alerts.providers.core.utils import (is_valid_price,
                                                normalize_symbol, parse_price)

__all__ = [
    "MarketDataClient",
    "SingleFlight",
    "is_valid_price",
    "normalize_symbol",
    "parse_price",
]
