"""
Tests for page arithmetic and callback page tokens
==================================================
"""
import pytest

from crypto_alerts.services import pagination
from crypto_alerts.utils import fmt_num, format_change, pad_label, truncate


class TestPageArithmetic:
    @pytest.mark.parametrize("total,expected", [(0, 1), (1, 1), (20, 1), (21, 2), (25, 2), (40, 2), (41, 3)])
    def test_page_count(self, total, expected):
        assert pagination.page_count(total, 20) == expected

    def test_clamp(self):
        assert pagination.clamp_page(5, 2) == 1
        assert pagination.clamp_page(-1, 2) == 0
        assert pagination.clamp_page(1, 2) == 1
        assert pagination.clamp_page(3, 1) == 0

    def test_page_slice(self):
        items = list(range(25))
        assert pagination.page_slice(items, 0, 20) == list(range(20))
        assert pagination.page_slice(items, 1, 20) == [20, 21, 22, 23, 24]
        assert pagination.page_slice(items, 2, 20) == []


class TestPageTokens:
    """Tests for building and parsing callback data."""

    def test_builders(self):
        assert pagination.alerts_page_data(2) == "alerts_page_2_view"
        assert pagination.show_delete_menu_data(None) == "show_delete_menu_all"
        assert pagination.show_delete_menu_data(0) == "show_delete_menu_0"
        assert pagination.delete_data("ab12", 1) == "del_ab12_p1"
        assert pagination.delete_data("ab12", None) == "del_ab12_pall"
        assert pagination.back_to_alerts_data(3) == "back_to_alerts_p3"
        assert pagination.back_to_alerts_data(None) == "back_to_alerts"
        assert pagination.archive_page_data(1, pagination.archive_token(7, "BTC")) == (
            "old_alerts_page_1_view_d7_qBTC"
        )

    def test_parsers(self):
        assert pagination.parse_alerts_page("alerts_page_4_view") == 4
        assert pagination.parse_alerts_page("alerts_page_x_view") is None
        assert pagination.parse_show_delete_menu("show_delete_menu_all") == (None,)
        assert pagination.parse_show_delete_menu("show_delete_menu_2") == (2,)
        assert pagination.parse_show_delete_menu("nope") is None
        assert pagination.parse_delete("del_0a1b_pall") == ("0a1b", None)
        assert pagination.parse_delete("del_0a1b_p3") == ("0a1b", 3)
        assert pagination.parse_back_to_alerts("back_to_alerts") == 0
        assert pagination.parse_back_to_alerts("back_to_alerts_p2") == 2
        assert pagination.parse_archive_page("old_alerts_page_1_view_d30_q") == (1, 30, None)
        assert pagination.parse_archive_page("old_alerts_page_0_view_d7_qETH") == (0, 7, "ETH")


class TestFormatting:
    @pytest.mark.parametrize("value,expected", [
        (50500.0, "50500"),
        (1234.5678, "1235"),
        (3.0, "3"),
        (2.5, "2.5"),
        (1.23456, "1.2346"),
        (0.0000123, "0.0000123"),
        (0.123456789, "0.123457"),
        (None, "—"),
        (float("nan"), "—"),
    ])
    def test_fmt_num(self, value, expected):
        assert fmt_num(value) == expected

    def test_format_change(self):
        assert format_change(1.0) == "+1.00% 📈"
        assert format_change(-2.5) == "-2.50% 📉"
        assert format_change(0.0) == "+0.00%"

    def test_pad_and_truncate(self):
        assert len(pad_label("abc", 10)) == 10
        assert truncate("abcdef", 4) == "abc…"
        assert truncate("abc", 4) == "abc"
