"""Tests for option symbol parsing and the action classifier."""

from datetime import date
from decimal import Decimal

import pytest

from tradeledger.models.execution_classifier import (
    is_buy,
    is_buy_to_close,
    is_close,
    is_open,
    is_sell,
    is_sell_to_open,
)
from tradeledger.models.option_symbol import (
    OptionRight,
    ParsedContract,
    format_contract,
    is_option_symbol,
    parse_option_symbol,
)


class TestParseOptionSymbol:

    def test_put(self):
        c = parse_option_symbol("SPXW 02/10/2026 6880.00 P")
        assert c == ParsedContract("SPXW", date(2026, 2, 10), Decimal("6880.00"), OptionRight.PUT)

    def test_call(self):
        c = parse_option_symbol("AAPL 01/17/2025 190 C")
        assert c.right == OptionRight.CALL
        assert c.strike == Decimal("190")

    def test_lowercase_and_whitespace(self):
        c = parse_option_symbol("  spx   03/21/2025   5000.5   p ")
        assert c.underlying == "SPX"
        assert c.strike == Decimal("5000.5")
        assert c.right == OptionRight.PUT

    def test_dotted_underlying(self):
        assert parse_option_symbol("BRK.B 06/20/2025 450 C").underlying == "BRK.B"

    def test_strike_scale_does_not_matter_for_equality(self):
        a = parse_option_symbol("SPX 02/20/2026 6800.00 P")
        b = parse_option_symbol("SPX 02/20/2026 6800 P")
        assert a.strike == b.strike
        assert hash(a.strike) == hash(b.strike)

    @pytest.mark.parametrize("symbol", [
        None,
        "",
        "   ",
        "AAPL",
        "SPX 02/20/2026 6800 X",
        "SPX 2026-02-20 6800 P",
        "SPX 02/20/2026 P",
        "SPX 13/45/2026 6800 P",
        "SPX 02/20/2026 -5 P",
        "SPX 02/20/2026 6800 P extra",
    ])
    def test_not_an_option(self, symbol):
        assert parse_option_symbol(symbol) is None
        assert not is_option_symbol(symbol)

    def test_is_option_symbol(self):
        assert is_option_symbol("SPX 02/20/2026 6800 P")

    def test_format_contract(self):
        c = parse_option_symbol("SPXW 02/10/2026 6880.00 P")
        assert format_contract(c) == "SPXW 2026-02-10 6880 Put"

    def test_format_contract_fractional_strike(self):
        c = parse_option_symbol("XSP 02/10/2026 612.50 C")
        assert format_contract(c) == "XSP 2026-02-10 612.5 Call"


class TestExecutionClassifier:

    @pytest.mark.parametrize("action, opening, closing, sell, buy", [
        ("Sell to Open", True, False, True, False),
        ("Buy to Open", True, False, False, True),
        ("Buy to Close", False, True, False, True),
        ("Sell to Close", False, True, True, False),
        ("Expired", False, True, False, False),
        ("SELL TO OPEN", True, False, True, False),
        ("Journal", False, False, False, False),
        ("", False, False, False, False),
        (None, False, False, False, False),
    ])
    def test_predicates(self, action, opening, closing, sell, buy):
        assert is_open(action) is opening
        assert is_close(action) is closing
        assert is_sell(action) is sell
        assert is_buy(action) is buy

    def test_combined_predicates(self):
        assert is_sell_to_open("Sell to Open")
        assert not is_sell_to_open("Sell to Close")
        assert is_buy_to_close("Buy to Close")
        assert not is_buy_to_close("Expired")

    def test_sell_must_lead(self):
        assert not is_sell("Short sell to open")
