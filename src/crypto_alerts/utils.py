"""Shared formatting helpers for chat-facing alert text."""
import math

NBSP = " "


def fmt_num(value: float | None) -> str:
    """Compact price formatting.

    Large or integral values are rounded to an integer, values >= 1 keep up
    to four decimals, smaller ones six significant digits. Missing or
    non-finite values render as an em dash.
    """
    if value is None or not math.isfinite(value):
        return "—"
    if value >= 1000 or value == math.floor(value):
        return str(round(value))
    if value >= 1:
        decimals = 4
    else:
        decimals = 5 - math.floor(math.log10(abs(value)))
    return f"{value:.{decimals}f}".rstrip("0").rstrip(".")


def format_change(change_pct: float) -> str:
    """Signed percentage with a trend icon, e.g. ``+1.25% 📈``."""
    sign = "+" if change_pct >= 0 else ""
    text = f"{sign}{change_pct:.2f}%"
    if change_pct > 0:
        return f"{text} 📈"
    if change_pct < 0:
        return f"{text} 📉"
    return text


def pad_label(text: str, target_len: int = 30) -> str:
    """Right-pad with non-breaking spaces so chat clients keep button width."""
    if len(text) >= target_len:
        return text
    return text + NBSP * (target_len - len(text))


def truncate(text: str, max_len: int) -> str:
    """Cut ``text`` to ``max_len`` characters, ending with an ellipsis if cut."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"
