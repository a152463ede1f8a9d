"""Models for the KuCoin public market-data endpoints."""
from pydantic import BaseModel, Field


class TickerItem(BaseModel):
    """One row of /api/v1/market/allTickers. ``last`` is a decimal string or null."""

    symbol: str
    last: str | None = None


class TickersData(BaseModel):
    time: int | None = None
    ticker: list[TickerItem] = Field(default_factory=list)


class TickersResponse(BaseModel):
    code: str | None = None
    data: TickersData | None = None


class Level1Data(BaseModel):
    """Best bid/ask snapshot; only ``price`` (last traded) is used."""

    price: str | None = None
    sequence: str | None = None
    time: int | None = None


class Level1Response(BaseModel):
    code: str | None = None
    data: Level1Data | None = None


class Level1Params(BaseModel):
    """Params for /api/v1/market/orderbook/level1."""

    symbol: str
