from __future__ import annotations

from src.integration.display import delta_strings, format_amount, leverage_str

USD = 10**30


class TestFormatAmount:
    def test_commas_and_truncation(self):
        assert format_amount(1234567 * 10**28, 30, 2, True) == "12,345.67"
        assert format_amount(19999, 4, 2) == "1.99"

    def test_padding(self):
        assert format_amount(5 * 10**17, 18) == "0.5000"

    def test_negative(self):
        assert format_amount(-15 * 10**5, 6, 2) == "-1.50"

    def test_zero_decimals(self):
        assert format_amount(123456, 2, 0, True) == "1,234"

    def test_none(self):
        assert format_amount(None, 18) == "..."
        assert format_amount(None, 18, default="-") == "-"


class TestDeltaStrings:
    def test_profit(self):
        assert delta_strings(100 * USD, 10_000, True) == ("+$100.00", "+100.00%")

    def test_loss(self):
        assert delta_strings(1234 * USD, 1234, False) == ("-$1,234.00", "-12.34%")

    def test_zero_has_no_sign(self):
        assert delta_strings(0, 0, True) == ("$0.00", "0.00%")


class TestLeverageStr:
    def test_plain(self):
        assert leverage_str(100_000) == "10.00x"

    def test_negative(self):
        assert leverage_str(-1) == "> 100x"

    def test_absent(self):
        assert leverage_str(None) is None
        assert leverage_str(0) is None
