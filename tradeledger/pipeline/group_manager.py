"""
Group Manager — idempotent persistence of matched strategies.

Public API:
    build_candidates(snapshots, kinds, ...) -> Dict[str, MatchResult]   (pure, no DB)
    GroupPersister.persist_candidates(candidates, broker, account)     (DB persistence)
    GroupPersister.attach_late_closes(option_execs, broker, account)   (DB persistence)

Each candidate is written in its own transaction: group row, flush for the
id, legs and execution links, flush, re-read the linked executions and store
the derived metrics.  A storage failure aborts the remaining candidates;
groups committed before it stay.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set, Tuple

from tradeledger.database.models import (
    Execution,
    TradeGroup,
    TradeGroupExecution,
    TradeGroupLeg,
)
from tradeledger.models.execution_classifier import is_close
from tradeledger.models.option_symbol import OptionRight
from tradeledger.pipeline.metrics import GrossReturnMode, compute_group_metrics
from tradeledger.pipeline.strategy_engine import (
    ButterflyCandidate,
    ButterflyScope,
    ExecutionSnapshot,
    MatchResult,
    OptionExecution,
    SpreadKey,
    TradeCandidate,
    execution_to_snapshot,
    find_candidates,
    parse_option_executions,
)
from tradeledger.pipeline.strategy_engine.adapters import closing_executions_for
from tradeledger.pipeline.strategy_engine.constants import BWB, CREDIT_SPREAD

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from tradeledger.database.db_manager import DatabaseManager

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure matching step
# ---------------------------------------------------------------------------

def build_candidates(
    snapshots: Sequence[ExecutionSnapshot],
    kinds: Iterable[str] = (CREDIT_SPREAD, BWB),
    existing_spread_keys: Set[SpreadKey] = frozenset(),
    existing_leg_sets: Mapping[ButterflyScope, List[FrozenSet[Decimal]]] = None,
) -> Dict[str, MatchResult]:
    """Pure function: time-ordered executions of one scope -> candidates per kind.

    Non-option executions are dropped before matching.
    """
    option_execs = parse_option_executions(snapshots)
    return find_candidates(
        option_execs,
        kinds=kinds,
        existing_spread_keys=existing_spread_keys,
        existing_leg_sets=existing_leg_sets,
    )


def group_strikes(group: TradeGroup) -> Set[Decimal]:
    """Strikes a group covers: short/long for spreads, leg strikes for BWB."""
    if group.strategy_type == BWB:
        return {leg.strike for leg in group.legs}
    return {s for s in (group.short_strike, group.long_strike) if s is not None}


# ---------------------------------------------------------------------------
# DB persistence layer
# ---------------------------------------------------------------------------

class GroupPersister:
    """Writes candidates as TradeGroup + legs + links and keeps their metrics current."""

    def __init__(self, db_manager: "DatabaseManager"):
        self.db = db_manager

    def persist_candidates(
        self,
        candidates: Sequence[TradeCandidate],
        broker: str,
        account: str,
        mode: GrossReturnMode = GrossReturnMode.ENTRY_EXIT,
    ) -> Tuple[int, int]:
        """Persist candidates in order.  Returns (groups_created, links_created).

        Raises StorageError on the first failing candidate.
        """
        groups_created = 0
        links_created = 0
        for candidate in candidates:
            links_created += self.persist_candidate(candidate, broker, account, mode)
            groups_created += 1
        return groups_created, links_created

    def persist_candidate(
        self,
        candidate: TradeCandidate,
        broker: str,
        account: str,
        mode: GrossReturnMode = GrossReturnMode.ENTRY_EXIT,
    ) -> int:
        """Create one group with its links in a single transaction.

        Returns the number of execution links written.
        """
        operation = f"persist {candidate.kind} {candidate.underlying} {candidate.expiration}"
        with self.db.get_session(operation) as session:
            group = self._new_group(candidate, broker, account, mode)
            session.add(group)
            session.flush()

            if isinstance(candidate, ButterflyCandidate):
                for leg in candidate.legs:
                    session.add(TradeGroupLeg(
                        trade_group_id=group.id,
                        underlying=candidate.underlying,
                        expiration=candidate.expiration,
                        right=candidate.right.value,
                        strike=leg.strike,
                        quantity=leg.quantity,
                        role=leg.role,
                    ))

            execution_ids = candidate.execution_ids
            for execution_id in execution_ids:
                session.add(TradeGroupExecution(
                    trade_group_id=group.id,
                    execution_id=execution_id,
                ))
            session.flush()

            self._apply_metrics(session, group)
            group_id = group.id

        logger.debug("Created %s group %d (%s %s %s) with %d links",
                     candidate.kind, group_id, candidate.underlying,
                     candidate.expiration, candidate.right.value, len(execution_ids))
        return len(execution_ids)

    def attach_late_closes(
        self,
        option_execs: Sequence[OptionExecution],
        broker: str,
        account: str,
        kinds: Iterable[str] = (CREDIT_SPREAD, BWB),
    ) -> int:
        """Link closing fills imported after a group was created.

        A close joins every existing group of the same contract family whose
        strikes include the close's strike.  Metrics are recomputed only for
        groups that gained links, using the gross-return mode each group was
        built with.  Returns the number of links written.
        """
        closes = [ox for ox in option_execs if is_close(ox.action)]
        if not closes:
            return 0

        links_created = 0
        with self.db.get_session("link closing executions") as session:
            groups = session.query(TradeGroup).filter(
                TradeGroup.broker == broker,
                TradeGroup.account == account,
                TradeGroup.strategy_type.in_(list(kinds)),
            ).all()
            if not groups:
                return 0

            linked: Dict[int, Set[int]] = defaultdict(set)
            for gid, eid in session.query(
                TradeGroupExecution.trade_group_id, TradeGroupExecution.execution_id,
            ).filter(TradeGroupExecution.trade_group_id.in_([g.id for g in groups])):
                linked[gid].add(eid)

            for group in groups:
                family = (group.underlying, group.expiration, OptionRight(group.right))
                new_ids = [
                    ox.id for ox in closing_executions_for(closes, family, group_strikes(group))
                    if ox.id not in linked[group.id]
                ]
                if not new_ids:
                    continue
                for execution_id in new_ids:
                    session.add(TradeGroupExecution(
                        trade_group_id=group.id,
                        execution_id=execution_id,
                    ))
                session.flush()
                self._apply_metrics(session, group)
                links_created += len(new_ids)
                logger.debug("Linked %d late closes to group %d", len(new_ids), group.id)

        return links_created

    # ------------------------------------------------------------------

    @staticmethod
    def _new_group(
        candidate: TradeCandidate, broker: str, account: str, mode: GrossReturnMode,
    ) -> TradeGroup:
        group = TradeGroup(
            broker=broker,
            account=account,
            strategy_type=candidate.kind,
            setup="",
            underlying=candidate.underlying,
            expiration=candidate.expiration,
            right=candidate.right.value,
            open_date=candidate.open_date,
            net_pl=Decimal("0"),
            gross_return=Decimal("0"),
            gross_mode=GrossReturnMode(mode).value,
        )
        if not isinstance(candidate, ButterflyCandidate):
            group.short_strike = candidate.short_strike
            group.long_strike = candidate.long_strike
        return group

    @staticmethod
    def _apply_metrics(session: "Session", group: TradeGroup) -> None:
        """Re-read the group's linked executions and store its derived fields."""
        rows = session.query(Execution).join(
            TradeGroupExecution, TradeGroupExecution.execution_id == Execution.id,
        ).filter(
            TradeGroupExecution.trade_group_id == group.id,
        ).order_by(Execution.executed_at.asc(), Execution.id.asc()).all()

        mode = GrossReturnMode(group.gross_mode or GrossReturnMode.ENTRY_EXIT.value)
        metrics = compute_group_metrics([execution_to_snapshot(r) for r in rows], mode)
        group.net_pl = metrics.net_pl
        group.gross_return = metrics.gross_return
        group.close_date = metrics.close_date
