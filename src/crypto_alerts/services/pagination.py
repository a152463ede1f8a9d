"""Page arithmetic and the callback-data page tokens carried by chat buttons.

A page token is either a 0-based page index or ``all`` (unscoped). Every
delete action embeds one so its result can be routed back to the right view.
"""
import math
import re
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

PAGE_SIZE = 20
ALL = "all"

PageToken = int | None  # None means "all"

_ALERTS_PAGE_RE = re.compile(r"^alerts_page_(\d+)_view$")
_SHOW_DELETE_RE = re.compile(r"^show_delete_menu_(all|\d+)$")
_DELETE_RE = re.compile(r"^del_([0-9a-fA-F]+)_p(all|\d+)$")
_BACK_RE = re.compile(r"^back_to_alerts(?:_p(\d+))?$")
_ARCHIVE_PAGE_RE = re.compile(r"^old_alerts_page_(\d+)_view_(d(\d+)_q(.*))$")


def page_count(total: int, page_size: int = PAGE_SIZE) -> int:
    """Number of pages for ``total`` entries; an empty list still has one page."""
    return max(1, math.ceil(total / page_size))


def clamp_page(page: int, total_pages: int) -> int:
    """Clamp ``page`` into ``[0, total_pages - 1]``."""
    return max(0, min(page, total_pages - 1))


def page_slice(items: Sequence[T], page: int, page_size: int = PAGE_SIZE) -> Sequence[T]:
    """Entries ``[page*size, page*size+size)``."""
    start = page * page_size
    return items[start:start + page_size]


def token_str(page: PageToken) -> str:
    return ALL if page is None else str(page)


def parse_token(raw: str) -> PageToken:
    return None if raw == ALL else int(raw)


# ---- builders ----

def alerts_page_data(page: int) -> str:
    return f"alerts_page_{page}_view"


def show_delete_menu_data(page: PageToken) -> str:
    return f"show_delete_menu_{token_str(page)}"


def delete_data(alert_id: str, page: PageToken) -> str:
    return f"del_{alert_id}_p{token_str(page)}"


def back_to_alerts_data(page: PageToken) -> str:
    return "back_to_alerts" if page is None else f"back_to_alerts_p{page}"


def archive_page_data(page: int, token: str) -> str:
    return f"old_alerts_page_{page}_view_{token}"


def archive_token(days: int, symbol: str | None = None) -> str:
    return f"d{days}_q{symbol or ''}"


# ---- parsers: return None when the data is not of that kind ----

def parse_alerts_page(data: str) -> int | None:
    m = _ALERTS_PAGE_RE.match(data)
    return int(m.group(1)) if m else None


def parse_show_delete_menu(data: str) -> tuple[PageToken] | None:
    """Returns a 1-tuple so the ``all`` token (None) is distinguishable from no match."""
    m = _SHOW_DELETE_RE.match(data)
    return (parse_token(m.group(1)),) if m else None


def parse_delete(data: str) -> tuple[str, PageToken] | None:
    m = _DELETE_RE.match(data)
    return (m.group(1), parse_token(m.group(2))) if m else None


def parse_back_to_alerts(data: str) -> int | None:
    """Page to return to (0 when the button carried no page)."""
    m = _BACK_RE.match(data)
    if not m:
        return None
    return int(m.group(1)) if m.group(1) else 0


def parse_archive_page(data: str) -> tuple[int, int, str | None] | None:
    """(page, days, symbol) from an archive navigation button."""
    m = _ARCHIVE_PAGE_RE.match(data)
    if not m:
        return None
    return int(m.group(1)), int(m.group(3)), m.group(4) or None
