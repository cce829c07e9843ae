"""
Metrics Calculator — derived P&L figures for a fully linked trade group.

Persisted per group: net_pl, gross_return, close_date.  Risk figures
(max risk, return %, breakeven, ROI/day, outcome) are computed on read for
reporting and never stored.

Two gross-return formulas coexist and are kept as separate functions:

    gross_return_entry_exit  entry credit - exit debit, from fill prices
                             (default for incremental matching passes)
    gross_return_with_fees   net P/L + fees of the linked fills
                             (used when groups are rebuilt from empty)

They diverge whenever fees or price rounding make net amounts differ from
price x quantity x 100.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence

from tradeledger.models.execution_classifier import (
    is_buy,
    is_buy_to_close,
    is_close,
    is_open,
    is_sell,
    is_sell_to_open,
)
from tradeledger.models.option_symbol import parse_option_symbol
from tradeledger.pipeline.strategy_engine.constants import (
    CONTRACT_MULTIPLIER,
    CREDIT_SPREAD,
    MAX_LOSS_TOLERANCE,
)
from tradeledger.pipeline.strategy_engine.types import ExecutionSnapshot

ZERO = Decimal("0")


class GrossReturnMode(str, Enum):
    ENTRY_EXIT = "entry_exit"
    WITH_FEES = "with_fees"


class Outcome(str, Enum):
    OPEN = "OPEN"
    WIN = "WIN"
    MAXL = "MAXL"
    LOSS = "LOSS"
    FLAT = "FLAT"


@dataclass(frozen=True)
class GroupMetrics:
    """Fields persisted on TradeGroup after linking."""
    net_pl: Decimal
    gross_return: Decimal
    close_date: Optional[date]


@dataclass(frozen=True)
class RiskMetrics:
    """Reporting-only figures for one group (CreditSpread fields may be None)."""
    outcome: Outcome
    dte: int
    days_held: Optional[int]
    entry_credit: Decimal
    exit_debit: Decimal
    contracts: Optional[Decimal] = None
    width: Optional[Decimal] = None
    gross_risk: Optional[Decimal] = None
    max_risk: Optional[Decimal] = None
    return_pct: Optional[Decimal] = None
    entry_price: Optional[Decimal] = None
    exit_price: Optional[Decimal] = None
    breakeven: Optional[Decimal] = None
    roi_per_day: Optional[Decimal] = None
    sign_warning: bool = False


# ---------------------------------------------------------------------------
# Persisted metrics
# ---------------------------------------------------------------------------

def _premium(ex: ExecutionSnapshot) -> Decimal:
    return (ex.price or ZERO) * ex.abs_quantity * CONTRACT_MULTIPLIER


def net_pl(execs: Iterable[ExecutionSnapshot]) -> Decimal:
    """After-fee realized P/L: sum of net amounts (missing amounts count as 0)."""
    return sum((ex.net_amount or ZERO for ex in execs), ZERO)


def total_fees(execs: Iterable[ExecutionSnapshot]) -> Decimal:
    return sum((ex.fees or ZERO for ex in execs), ZERO)


def entry_credit(execs: Iterable[ExecutionSnapshot]) -> Decimal:
    """Premium received on sell-to-open fills, from price x |qty| x 100."""
    return sum((_premium(ex) for ex in execs if is_sell_to_open(ex.action)), ZERO)


def exit_debit(execs: Iterable[ExecutionSnapshot]) -> Decimal:
    """Premium paid on buy-to-close fills, from price x |qty| x 100."""
    return sum((_premium(ex) for ex in execs if is_buy_to_close(ex.action)), ZERO)


def gross_return_entry_exit(execs: Sequence[ExecutionSnapshot]) -> Decimal:
    return entry_credit(execs) - exit_debit(execs)


def gross_return_with_fees(execs: Sequence[ExecutionSnapshot]) -> Decimal:
    return net_pl(execs) + total_fees(execs)


def close_date(execs: Iterable[ExecutionSnapshot]) -> Optional[date]:
    """Latest trade date among closing fills, or None while the group is open."""
    dates = [ex.trade_date for ex in execs if is_close(ex.action)]
    return max(dates) if dates else None


def compute_group_metrics(
    execs: Sequence[ExecutionSnapshot],
    mode: GrossReturnMode = GrossReturnMode.ENTRY_EXIT,
) -> GroupMetrics:
    if mode == GrossReturnMode.WITH_FEES:
        gross = gross_return_with_fees(execs)
    else:
        gross = gross_return_entry_exit(execs)
    return GroupMetrics(
        net_pl=net_pl(execs),
        gross_return=gross,
        close_date=close_date(execs),
    )


# ---------------------------------------------------------------------------
# Reporting-only metrics
# ---------------------------------------------------------------------------

def days_to_expiration(open_date: date, expiration: date) -> int:
    return (expiration - open_date).days


def days_held(open_date: date, closed_on: Optional[date]) -> Optional[int]:
    if closed_on is None:
        return None
    return (closed_on - open_date).days


def classify_outcome(
    group_net_pl: Decimal,
    closed_on: Optional[date],
    max_risk: Optional[Decimal] = None,
) -> Outcome:
    """OPEN / WIN / MAXL / LOSS / FLAT.

    MAXL needs a known max risk: a loss within MAX_LOSS_TOLERANCE of it.
    """
    if closed_on is None:
        return Outcome.OPEN
    if group_net_pl > 0:
        return Outcome.WIN
    if group_net_pl < 0:
        if max_risk is not None and abs(group_net_pl + max_risk) <= MAX_LOSS_TOLERANCE:
            return Outcome.MAXL
        return Outcome.LOSS
    return Outcome.FLAT


def display_entry_credit(execs: Iterable[ExecutionSnapshot]) -> Decimal:
    """Net credit on opening fills from net amounts (sells +, buys -), floored at 0."""
    total = ZERO
    for ex in execs:
        if not is_open(ex.action):
            continue
        if is_sell(ex.action):
            total += abs(ex.net_amount)
        elif is_buy(ex.action):
            total -= abs(ex.net_amount)
    return max(ZERO, total)


def display_exit_debit(execs: Iterable[ExecutionSnapshot]) -> Decimal:
    """Net debit on closing fills from net amounts (buys +, sells -), floored at 0."""
    total = ZERO
    for ex in execs:
        if not is_close(ex.action):
            continue
        if is_buy(ex.action):
            total += abs(ex.net_amount)
        elif is_sell(ex.action):
            total -= abs(ex.net_amount)
    return max(ZERO, total)


def compute_risk_metrics(group, execs: Sequence[ExecutionSnapshot]) -> RiskMetrics:
    """Risk/return figures for a stored group and its linked executions.

    ``group`` needs strategy_type, right, short_strike, long_strike,
    expiration, open_date, close_date and net_pl (a TradeGroup row works).
    """
    closed = group.close_date is not None
    group_pl = group.net_pl if group.net_pl is not None else ZERO
    credit = display_entry_credit(execs)
    debit = display_exit_debit(execs)
    held = days_held(group.open_date, group.close_date)

    contracts = width = gross_risk = max_risk = None
    return_pct = entry_px = exit_px = None

    if group.strategy_type == CREDIT_SPREAD:
        qty_short = qty_long = None
        for ex in execs:
            if not is_open(ex.action):
                continue
            contract = parse_option_symbol(ex.symbol)
            if contract is None:
                continue
            if contract.strike == group.short_strike:
                qty_short = ex.abs_quantity
            if contract.strike == group.long_strike:
                qty_long = ex.abs_quantity

        if qty_short is not None and qty_long is not None:
            contracts = min(qty_short, qty_long)
            width = abs(group.short_strike - group.long_strike)
            gross_risk = width * CONTRACT_MULTIPLIER * contracts
            max_risk = gross_risk - credit

            if max_risk != 0:
                return_pct = group_pl / max_risk * 100

            if contracts > 0:
                entry_px = credit / (contracts * CONTRACT_MULTIPLIER)
                if closed:
                    exit_px = debit / (contracts * CONTRACT_MULTIPLIER)

    breakeven = None
    if entry_px is not None:
        right = (group.right or "").strip().upper()
        if right.startswith("P"):
            breakeven = group.short_strike - entry_px
        elif right.startswith("C"):
            breakeven = group.short_strike + entry_px

    roi_per_day = None
    if closed and return_pct is not None and held and held > 0:
        roi_per_day = return_pct / held

    return RiskMetrics(
        outcome=classify_outcome(group_pl, group.close_date, max_risk),
        dte=days_to_expiration(group.open_date, group.expiration),
        days_held=held,
        entry_credit=credit,
        exit_debit=debit,
        contracts=contracts,
        width=width,
        gross_risk=gross_risk,
        max_risk=max_risk,
        return_pct=return_pct,
        entry_price=entry_px,
        exit_price=exit_px,
        breakeven=breakeven,
        roi_per_day=roi_per_day,
        sign_warning=closed and credit == 0 and debit > 0,
    )
