"""HTTP client for KuCoin's public market-data API."""
import asyncio
import logging
from collections.abc import Callable

import httpx

from crypto_alerts.errors import UpstreamError
from crypto_alerts.providers.core.utils import parse_price
from crypto_alerts.providers.kucoin.models import (Level1Params,
                                                   Level1Response, TickerItem,
                                                   TickersResponse)

logger = logging.getLogger(__name__)

_REQUEST_ERRORS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    asyncio.TimeoutError,
    TimeoutError,
)


def is_retryable(exc: Exception) -> bool:
    """Transport failures, timeouts, 429 and 5xx are retried; other statuses are final."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, TimeoutError))


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
    return min(0.5 * 1.6**attempt, 4.0)


class KucoinClient:
    """Market data client for KuCoin spot tickers.

    Every call carries a fixed timeout and is retried a small, bounded number
    of times with exponential backoff. After the last attempt fails the call
    raises UpstreamError; it never hangs the caller.
    """

    BASE_URL = "https://api.kucoin.com"

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        retries: int = 2,
        client: httpx.AsyncClient | None = None,
        backoff: Callable[[int], float] = backoff_delay,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API root; override for tests or proxies.
            timeout: Per-request timeout in seconds.
            retries: Extra attempts after the first failure.
            client: Pre-built httpx client (tests pass one with a MockTransport).
            backoff: Delay in seconds after a failed attempt, by attempt index.
        """
        self._retries = retries
        self._backoff = backoff
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "User-Agent": "crypto-alert-bot/1.0",
                "Accept": "application/json",
            },
        )

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        last_exc: Exception | None = None
        for attempt in range(self._retries + 1):
            try:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
                return response.json()
            except _REQUEST_ERRORS as exc:
                last_exc = exc
                logger.debug(
                    "GET %s failed (attempt %d/%d): %s",
                    path, attempt + 1, self._retries + 1, exc,
                )
                if not is_retryable(exc):
                    break
                if attempt < self._retries:
                    await asyncio.sleep(self._backoff(attempt))
        raise UpstreamError(f"GET {path} failed: {last_exc}") from last_exc

    async def get_all_tickers(self) -> list[TickerItem]:
        """Fetch the full spot ticker list (symbol + last price)."""
        payload = TickersResponse.model_validate(
            await self._get_json("/api/v1/market/allTickers")
        )
        return payload.data.ticker if payload.data else []

    async def get_level1_price(self, symbol: str) -> float | None:
        """Fetch the level-1 order book price for ``symbol``.

        Returns:
            The price, or None if the exchange has no finite price for it.
        """
        payload = Level1Response.model_validate(
            await self._get_json(
                "/api/v1/market/orderbook/level1",
                params=Level1Params(symbol=symbol).model_dump(),
            )
        )
        return parse_price(payload.data.price) if payload.data else None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "KucoinClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()
