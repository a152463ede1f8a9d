"""Runtime settings for the alerts service, read from environment variables."""
import os

from pydantic import BaseModel, Field


def _env_seconds(name: str, default_ms: int) -> float:
    """Read a millisecond env var and return seconds."""
    return int(os.getenv(name, str(default_ms))) / 1000


class Settings(BaseModel):
    """Tunables for the price cache, alert store, matcher and rendering.

    Durations are in seconds. Environment variables keep the millisecond
    units the deployment already uses (e.g. ``TICKERS_TTL_MS``).
    """

    database_url: str = "sqlite:///./alerts.db"
    sql_echo: bool = False

    kucoin_base_url: str = "https://api.kucoin.com"
    http_timeout: float = Field(default=10.0, gt=0)
    http_retries: int = Field(default=2, ge=0)

    tickers_ttl: float = Field(default=55.0, gt=0)
    tickers_refresh_interval: float = Field(default=60.0, gt=0)
    level1_ttl: float = Field(default=20.0, gt=0)
    cache_ttl: float = Field(default=20.0, ge=0)

    matcher_interval: float = Field(default=60.0, gt=0)
    matcher_batch_size: int = Field(default=8, ge=1)
    page_size: int = Field(default=20, ge=1)
    max_alerts_per_user: int | None = Field(default=None, ge=0)

    telegram_bot_token: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        limit = os.getenv("MAX_ALERTS_PER_USER")
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.model_fields["database_url"].default),
            sql_echo=os.getenv("SQL_ECHO", "0") == "1",
            kucoin_base_url=os.getenv("KUCOIN_BASE_URL", "https://api.kucoin.com"),
            http_timeout=_env_seconds("HTTP_TIMEOUT_MS", 10_000),
            http_retries=int(os.getenv("HTTP_RETRIES", "2")),
            tickers_ttl=_env_seconds("TICKERS_TTL_MS", 55_000),
            tickers_refresh_interval=_env_seconds("TICKERS_REFRESH_INTERVAL_MS", 60_000),
            level1_ttl=_env_seconds("LEVEL1_TTL_MS", 20_000),
            cache_ttl=_env_seconds("CACHE_TTL_MS", 20_000),
            matcher_interval=_env_seconds("BG_CHECK_INTERVAL_MS", 60_000),
            matcher_batch_size=int(os.getenv("MATCHER_BATCH_SIZE", "8")),
            page_size=int(os.getenv("ENTRIES_PER_PAGE", "20")),
            max_alerts_per_user=int(limit) if limit else None,
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
        )
