"""Protocols for market data providers."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from crypto_alerts.providers.kucoin.models import TickerItem


class MarketDataClient(Protocol):
    """Upstream calls the price cache needs: bulk tickers and one-symbol price."""

    async def get_all_tickers(self) -> list[TickerItem]:
        """Fetch the exchange's full ticker list."""
        ...

    async def get_level1_price(self, symbol: str) -> float | None:
        """Fetch the best (level-1 order book) price for one symbol."""
        ...
