"""Broken-wing butterfly pattern (3 strikes, same day, same expiry and type)."""

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, FrozenSet, List, Mapping, Sequence

from tradeledger.models.execution_classifier import is_buy, is_open, is_sell
from .adapters import closing_executions_for
from .constants import ROLE_BODY, ROLE_WING
from .types import (
    ButterflyCandidate,
    ButterflyScope,
    LegSpec,
    MatchResult,
    OptionExecution,
)


@dataclass
class StrikePosition:
    """Net signed opening quantity at one strike of a bucket."""
    strike: Decimal
    signed_qty: Decimal = Decimal("0")
    rows: List[OptionExecution] = field(default_factory=list)


def net_strike_positions(opens: Sequence[OptionExecution]) -> List[StrikePosition]:
    """Net buy-to-open (+) against sell-to-open (-) per strike.

    Strikes netting to exactly zero are dropped; the rest come back sorted by
    strike ascending.  Rows with no quantity still count as rows of the strike.
    """
    by_strike: Dict[Decimal, StrikePosition] = {}
    for ox in opens:
        pos = by_strike.setdefault(ox.strike, StrikePosition(strike=ox.strike))
        pos.rows.append(ox)

        qty = ox.execution.abs_quantity
        if qty == 0:
            continue
        if is_buy(ox.action):
            pos.signed_qty += qty
        elif is_sell(ox.action):
            pos.signed_qty -= qty

    return sorted(
        (p for p in by_strike.values() if p.signed_qty != 0),
        key=lambda p: p.strike,
    )


def is_butterfly_triple(low: StrikePosition, mid: StrikePosition, high: StrikePosition) -> bool:
    """+w / -2w / +w with w = min(|low|, |high|), compared exactly."""
    wing = min(abs(low.signed_qty), abs(high.signed_qty))
    if wing == 0:
        return False
    return (
        low.signed_qty == wing
        and high.signed_qty == wing
        and mid.signed_qty == -2 * wing
    )


def match_butterflies(
    option_execs: Sequence[OptionExecution],
    existing_leg_sets: Mapping[ButterflyScope, List[FrozenSet[Decimal]]],
) -> MatchResult:
    """Find every qualifying strike triple among same-day opens.

    Preconditions (checked by caller):
    - option_execs belong to one (broker, account) scope
    - option_execs are ordered by executed_at ascending

    Opens are bucketed by (trade date, underlying, expiration, right).  All
    index triples i < j < k over the sorted nonzero strikes are tried, so
    overlapping butterflies sharing a strike each become a candidate.  A
    candidate is skipped only when one existing group of the same scope
    already holds all three of its strikes.
    """
    known: Dict[ButterflyScope, List[FrozenSet[Decimal]]] = {
        scope: list(sets) for scope, sets in existing_leg_sets.items()
    }
    result = MatchResult()

    buckets: Dict[tuple, List[OptionExecution]] = OrderedDict()
    for ox in option_execs:
        if not is_open(ox.action):
            continue
        buckets.setdefault((ox.execution.trade_date,) + ox.family, []).append(ox)

    for (open_date, underlying, expiration, right), opens in buckets.items():
        positions = net_strike_positions(opens)
        if len(positions) < 3:
            continue

        scope = ButterflyScope(underlying, expiration, right, open_date)
        family = (underlying, expiration, right)

        n = len(positions)
        for i in range(n - 2):
            for j in range(i + 1, n - 1):
                for k in range(j + 1, n):
                    low, mid, high = positions[i], positions[j], positions[k]
                    if not is_butterfly_triple(low, mid, high):
                        continue

                    candidate = ButterflyCandidate(
                        underlying=underlying,
                        expiration=expiration,
                        right=right,
                        open_date=open_date,
                        legs=(
                            LegSpec(low.strike, low.signed_qty, ROLE_WING),
                            LegSpec(mid.strike, mid.signed_qty, ROLE_BODY),
                            LegSpec(high.strike, high.signed_qty, ROLE_WING),
                        ),
                        opening_ids=_unique_ids(low.rows + mid.rows + high.rows),
                    )
                    strikes = candidate.strikes
                    if any(strikes <= leg_set for leg_set in known.get(scope, ())):
                        result.duplicates_skipped += 1
                        continue
                    known.setdefault(scope, []).append(strikes)

                    closes = closing_executions_for(option_execs, family, strikes)
                    result.candidates.append(replace(candidate, closing_ids=tuple(c.id for c in closes)))

    return result


def _unique_ids(rows: Sequence[OptionExecution]) -> tuple:
    seen = set()
    ids = []
    for ox in rows:
        if ox.id not in seen:
            seen.add(ox.id)
            ids.append(ox.id)
    return tuple(ids)
