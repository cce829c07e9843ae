"""Strategy Engine — pure, store-free matching of option fills into strategies.

Public API:
    find_candidates(option_execs, kinds, ...) -> Dict[str, MatchResult]
    match_credit_spreads(option_execs, existing_keys) -> MatchResult
    match_butterflies(option_execs, existing_leg_sets) -> MatchResult
    parse_option_executions(snapshots) -> List[OptionExecution]
"""

from .recognizer import find_candidates
from .adapters import execution_to_snapshot, parse_option_executions
from .patterns_vertical import match_credit_spreads
from .patterns_butterfly import match_butterflies
from .types import (
    ButterflyCandidate,
    ButterflyScope,
    CreditSpreadCandidate,
    ExecutionSnapshot,
    LegSpec,
    MatchResult,
    OptionExecution,
    SpreadKey,
    TradeCandidate,
)
from .constants import BWB, CREDIT_SPREAD, STRATEGIES

__all__ = [
    "find_candidates", "execution_to_snapshot", "parse_option_executions",
    "match_credit_spreads", "match_butterflies",
    "ButterflyCandidate", "ButterflyScope", "CreditSpreadCandidate",
    "ExecutionSnapshot", "LegSpec", "MatchResult", "OptionExecution",
    "SpreadKey", "TradeCandidate", "BWB", "CREDIT_SPREAD", "STRATEGIES",
]
