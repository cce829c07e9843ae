"""Vertical credit spread pattern (2 legs, same expiry, same option type).

Greedy nearest-strike pairing: each sell-to-open leg takes the closest
remaining buy-to-open leg of the same size.  The result is not width-optimal
across a bucket, and is not meant to be.
"""

from collections import OrderedDict
from dataclasses import replace
from typing import Dict, List, Sequence, Set

from tradeledger.models.execution_classifier import is_buy, is_open, is_sell
from .adapters import closing_executions_for
from .types import CreditSpreadCandidate, MatchResult, OptionExecution, SpreadKey


def match_credit_spreads(
    option_execs: Sequence[OptionExecution],
    existing_keys: Set[SpreadKey],
) -> MatchResult:
    """Pair opening sell/buy legs into credit spread candidates.

    Preconditions (checked by caller):
    - option_execs belong to one (broker, account) scope
    - option_execs are ordered by executed_at ascending

    Opens are bucketed by (underlying, expiration, right).  The execution date
    is not part of the bucket, so legs opened on different days can pair.
    Candidates whose key is already in ``existing_keys`` are skipped; keys of
    accepted candidates are added so a pass never yields the same key twice.
    """
    seen_keys = set(existing_keys)
    result = MatchResult()

    buckets: Dict[tuple, List[OptionExecution]] = OrderedDict()
    for ox in option_execs:
        if not is_open(ox.action):
            continue
        buckets.setdefault(ox.family, []).append(ox)

    for family, opens in buckets.items():
        sells = [ox for ox in opens if is_sell(ox.action)]
        buys = [ox for ox in opens if is_buy(ox.action)]

        for sell in sells:
            qty = sell.execution.abs_quantity
            if qty == 0:
                continue

            eligible = [b for b in buys if b.execution.abs_quantity == qty]
            if not eligible:
                continue

            # min() keeps the first of equally-near legs (encounter order)
            buy = min(eligible, key=lambda b: abs(b.strike - sell.strike))
            buys.remove(buy)

            underlying, expiration, right = family
            candidate = CreditSpreadCandidate(
                underlying=underlying,
                expiration=expiration,
                right=right,
                short_strike=sell.strike,
                long_strike=buy.strike,
                open_date=sell.execution.trade_date,
                quantity=qty,
                opening_ids=(sell.id, buy.id),
            )
            if candidate.key in seen_keys:
                result.duplicates_skipped += 1
                continue
            seen_keys.add(candidate.key)

            closes = closing_executions_for(option_execs, family, (sell.strike, buy.strike))
            result.candidates.append(replace(candidate, closing_ids=tuple(c.id for c in closes)))

    return result
