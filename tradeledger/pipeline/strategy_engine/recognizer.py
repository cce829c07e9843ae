"""Main matching dispatcher."""

from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set

from .constants import BWB, CREDIT_SPREAD, STRATEGIES
from .patterns_butterfly import match_butterflies
from .patterns_vertical import match_credit_spreads
from .types import ButterflyScope, MatchResult, OptionExecution, SpreadKey


def find_candidates(
    option_execs: Sequence[OptionExecution],
    kinds: Iterable[str] = (CREDIT_SPREAD, BWB),
    existing_spread_keys: Set[SpreadKey] = frozenset(),
    existing_leg_sets: Mapping[ButterflyScope, List[FrozenSet[Decimal]]] = None,
) -> Dict[str, MatchResult]:
    """Run the requested matchers over one scope's option executions.

    Algorithm:
    1. Credit spreads (greedy nearest-strike pairing across days)
    2. Broken-wing butterflies (same-day strike triples)

    The matchers are independent; a fill may feed both a spread and a
    butterfly candidate.  Returns one MatchResult per requested kind.
    """
    results: Dict[str, MatchResult] = {}
    for kind in kinds:
        if kind not in STRATEGIES:
            raise ValueError(f"Unknown strategy kind: {kind}")
        if kind == CREDIT_SPREAD:
            results[kind] = match_credit_spreads(option_execs, set(existing_spread_keys))
        elif kind == BWB:
            results[kind] = match_butterflies(option_execs, existing_leg_sets or {})
    return results
