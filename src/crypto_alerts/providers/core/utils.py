"""Shared utilities for market data providers."""
import math

QUOTE_ASSET = "USDT"


def normalize_symbol(symbol: str) -> str:
    """Normalize a trading pair to exchange form (``btc`` -> ``BTC-USDT``)."""
    sym = symbol.strip().upper().replace("/", "-")
    if not sym:
        raise ValueError("Symbol must not be empty")
    if "-" not in sym:
        sym = f"{sym}-{QUOTE_ASSET}"
    return sym


def parse_price(value: object) -> float | None:
    """Parse an upstream price field; None for missing or non-finite values."""
    if value is None or value == "":
        return None
    try:
        price = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) else None


def is_valid_price(value: float | None) -> bool:
    """True for finite, strictly positive prices."""
    return value is not None and math.isfinite(value) and value > 0
