"""
Pipeline Orchestrator — runs matching passes for one (broker, account) scope.

A pass composes:
  1. Load the scope's executions in time order
  2. Load existing spread keys / butterfly leg sets (dedup state)
  3. strategy_engine matching (pure)
  4. GroupPersister, one transaction per candidate
  5. Link closing executions imported since earlier passes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Tuple

from tradeledger.pipeline.group_manager import GroupPersister, build_candidates
from tradeledger.pipeline.metrics import GrossReturnMode
from tradeledger.pipeline.strategy_engine import parse_option_executions
from tradeledger.pipeline.strategy_engine.constants import BWB, CREDIT_SPREAD

if TYPE_CHECKING:
    from tradeledger.database.db_manager import DatabaseManager

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    """Counters of one matching pass."""
    kinds: Tuple[str, ...]
    candidates: int = 0
    groups_created: int = 0
    links_created: int = 0
    duplicates_skipped: int = 0


def run_matching_pass(
    db_manager: "DatabaseManager",
    broker: str,
    account: str,
    kinds: Iterable[str] = (CREDIT_SPREAD, BWB),
    mode: GrossReturnMode = GrossReturnMode.ENTRY_EXIT,
) -> PassResult:
    """Match and persist new groups for one scope.

    Re-running over unchanged executions creates no groups and no links.
    StorageError from the persistence step propagates; groups committed
    before the failure remain.
    """
    kinds = tuple(kinds)
    result = PassResult(kinds=kinds)

    snapshots = db_manager.get_execution_snapshots(broker, account)
    if not snapshots:
        logger.info("No executions for %s/%s, nothing to match", broker, account)
        return result

    spread_keys = db_manager.get_existing_spread_keys(broker, account) if CREDIT_SPREAD in kinds else set()
    leg_sets = db_manager.get_existing_butterfly_leg_sets(broker, account) if BWB in kinds else {}

    matches = build_candidates(
        snapshots,
        kinds=kinds,
        existing_spread_keys=spread_keys,
        existing_leg_sets=leg_sets,
    )

    persister = GroupPersister(db_manager)
    for kind in kinds:
        match = matches[kind]
        result.candidates += match.found
        result.duplicates_skipped += match.duplicates_skipped

        created, links = persister.persist_candidates(match.candidates, broker, account, mode)
        result.groups_created += created
        result.links_created += links
        logger.info("%s: %d candidates, %d created, %d duplicates skipped",
                    kind, match.found, created, match.duplicates_skipped)

    late_links = persister.attach_late_closes(
        parse_option_executions(snapshots), broker, account, kinds,
    )
    if late_links:
        logger.info("Linked %d closing executions to existing groups", late_links)
    result.links_created += late_links

    return result


def group_spreads(db_manager: "DatabaseManager", broker: str, account: str) -> PassResult:
    return run_matching_pass(db_manager, broker, account, kinds=(CREDIT_SPREAD,))


def group_butterflies(db_manager: "DatabaseManager", broker: str, account: str) -> PassResult:
    return run_matching_pass(db_manager, broker, account, kinds=(BWB,))


def rebuild_groups(db_manager: "DatabaseManager", broker: str, account: str) -> PassResult:
    """Delete the scope's groups and re-match spreads and butterflies from scratch.

    Gross return on this path is net P/L plus fees.
    """
    deleted = db_manager.clear_groups(broker, account)
    logger.info("Cleared %d groups for %s/%s before rebuild", deleted, broker, account)
    return run_matching_pass(
        db_manager, broker, account,
        kinds=(CREDIT_SPREAD, BWB),
        mode=GrossReturnMode.WITH_FEES,
    )
