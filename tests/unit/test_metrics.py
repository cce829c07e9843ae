"""
Tests for the metrics calculator.

Reference scenario: a 1-lot SPX 6800/6790 put credit spread opened on
2026-02-10 and closed on 2026-02-12, $0.66 fees per fill.

    STO 6800 @2.50   net  249.34
    BTO 6790 @1.00   net -100.66
    BTC 6800 @0.10   net  -10.66
    STC 6790 @0.05   net    4.34
"""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from tradeledger.pipeline.metrics import (
    GrossReturnMode,
    Outcome,
    classify_outcome,
    close_date,
    compute_group_metrics,
    compute_risk_metrics,
    days_held,
    days_to_expiration,
    display_entry_credit,
    display_exit_debit,
    entry_credit,
    exit_debit,
    gross_return_entry_exit,
    gross_return_with_fees,
    net_pl,
    total_fees,
)
from tests.conftest import make_snapshot, put


OPEN = datetime(2026, 2, 10, 9, 30)
CLOSE = datetime(2026, 2, 12, 10, 15)


def _spread_fills(closed=True):
    fills = [
        make_snapshot(id=1, executed_at=OPEN, action="Sell to Open", symbol=put(6800), quantity=-1, price=2.50),
        make_snapshot(id=2, executed_at=OPEN, action="Buy to Open", symbol=put(6790), quantity=1, price=1.00),
    ]
    if closed:
        fills += [
            make_snapshot(id=3, executed_at=CLOSE, action="Buy to Close", symbol=put(6800), quantity=1, price=0.10),
            make_snapshot(id=4, executed_at=CLOSE, action="Sell to Close", symbol=put(6790), quantity=-1, price=0.05),
        ]
    return fills


def _group(fills, strategy="CreditSpread", right="Put", short=Decimal("6800"), long=Decimal("6790")):
    return SimpleNamespace(
        strategy_type=strategy,
        right=right,
        short_strike=short,
        long_strike=long,
        expiration=date(2026, 2, 20),
        open_date=date(2026, 2, 10),
        close_date=close_date(fills),
        net_pl=net_pl(fills),
    )


class TestPersistedMetrics:

    def test_net_pl_is_sum_of_net_amounts(self):
        assert net_pl(_spread_fills()) == Decimal("142.36")

    def test_total_fees(self):
        assert total_fees(_spread_fills()) == Decimal("2.64")

    def test_entry_and_exit_from_prices(self):
        fills = _spread_fills()
        assert entry_credit(fills) == Decimal("250.00")
        assert exit_debit(fills) == Decimal("10.00")

    def test_gross_formulas_diverge(self):
        fills = _spread_fills()
        assert gross_return_entry_exit(fills) == Decimal("240.00")
        assert gross_return_with_fees(fills) == Decimal("145.00")

    def test_compute_group_metrics_modes(self):
        fills = _spread_fills()
        default = compute_group_metrics(fills)
        rebuilt = compute_group_metrics(fills, GrossReturnMode.WITH_FEES)

        assert default.net_pl == rebuilt.net_pl == Decimal("142.36")
        assert default.gross_return == Decimal("240.00")
        assert rebuilt.gross_return == Decimal("145.00")
        assert default.close_date == date(2026, 2, 12)

    def test_close_date_is_latest_close(self):
        fills = _spread_fills() + [
            make_snapshot(id=5, executed_at=datetime(2026, 2, 20, 16, 0), action="Expired",
                          symbol=put(6790), quantity=1, price=0, fees=0, net_amount=0),
        ]
        assert close_date(fills) == date(2026, 2, 20)

    def test_open_group_has_no_close_date(self):
        assert close_date(_spread_fills(closed=False)) is None

    def test_missing_price_counts_as_zero(self):
        fills = [make_snapshot(action="Sell to Open", quantity=-1, price=None, net_amount=10)]
        assert entry_credit(fills) == Decimal("0")


class TestOutcome:

    def test_open(self):
        assert classify_outcome(Decimal("-50"), None, Decimal("100")) == Outcome.OPEN

    def test_win_loss_flat(self):
        closed = date(2026, 2, 12)
        assert classify_outcome(Decimal("1"), closed) == Outcome.WIN
        assert classify_outcome(Decimal("-1"), closed) == Outcome.LOSS
        assert classify_outcome(Decimal("0"), closed) == Outcome.FLAT

    def test_max_loss_within_tolerance(self):
        closed = date(2026, 2, 12)
        assert classify_outcome(Decimal("-851.00"), closed, Decimal("851.32")) == Outcome.MAXL
        assert classify_outcome(Decimal("-849.00"), closed, Decimal("851.32")) == Outcome.LOSS

    def test_max_loss_needs_known_risk(self):
        assert classify_outcome(Decimal("-851"), date(2026, 2, 12), None) == Outcome.LOSS


class TestRiskMetrics:

    def test_display_credit_and_debit_use_net_amounts(self):
        fills = _spread_fills()
        assert display_entry_credit(fills) == Decimal("148.68")
        assert display_exit_debit(fills) == Decimal("6.32")

    def test_display_figures_floor_at_zero(self):
        fills = [make_snapshot(action="Buy to Open", quantity=1, price=1.0)]
        assert display_entry_credit(fills) == Decimal("0")

    def test_day_counts(self):
        assert days_to_expiration(date(2026, 2, 10), date(2026, 2, 20)) == 10
        assert days_held(date(2026, 2, 10), date(2026, 2, 12)) == 2
        assert days_held(date(2026, 2, 10), None) is None

    def test_closed_put_spread(self):
        fills = _spread_fills()
        risk = compute_risk_metrics(_group(fills), fills)

        assert risk.outcome == Outcome.WIN
        assert risk.dte == 10
        assert risk.days_held == 2
        assert risk.contracts == Decimal("1")
        assert risk.width == Decimal("10")
        assert risk.gross_risk == Decimal("1000")
        assert risk.max_risk == Decimal("851.32")
        assert risk.return_pct == pytest.approx(Decimal("142.36") / Decimal("851.32") * 100)
        assert risk.entry_price == Decimal("1.4868")
        assert risk.exit_price == Decimal("0.0632")
        assert risk.breakeven == Decimal("6798.5132")
        assert risk.roi_per_day == pytest.approx(risk.return_pct / 2)
        assert not risk.sign_warning

    def test_call_breakeven_adds_entry_price(self):
        fills = _spread_fills()
        risk = compute_risk_metrics(_group(fills, right="Call"), fills)
        assert risk.breakeven == Decimal("6801.4868")

    def test_open_spread_has_no_exit_or_roi(self):
        fills = _spread_fills(closed=False)
        risk = compute_risk_metrics(_group(fills), fills)
        assert risk.outcome == Outcome.OPEN
        assert risk.exit_price is None
        assert risk.roi_per_day is None
        assert risk.days_held is None

    def test_butterfly_has_no_spread_figures(self):
        fills = _spread_fills()
        risk = compute_risk_metrics(_group(fills, strategy="BWB", short=None, long=None), fills)
        assert risk.contracts is None
        assert risk.max_risk is None
        assert risk.breakeven is None
        assert risk.outcome == Outcome.WIN

    def test_sign_warning_on_closed_group_without_credit(self):
        fills = [
            make_snapshot(id=1, executed_at=OPEN, action="Buy to Open", symbol=put(6800), quantity=1, price=1.0),
            make_snapshot(id=2, executed_at=CLOSE, action="Buy to Close", symbol=put(6800), quantity=1, price=1.0),
        ]
        risk = compute_risk_metrics(_group(fills), fills)
        assert risk.sign_warning
