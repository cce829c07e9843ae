"""
Database Manager for TradeLedger
Execution/Group store: schema creation, idempotent execution import and the
read queries used by matching passes and reporting.
"""

import logging
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from tradeledger.config import get_database_url
from tradeledger.database import engine as sa_engine
from tradeledger.database.models import (
    Base,
    Execution,
    TradeGroup,
    TradeGroupExecution,
    TradeGroupLeg,
)
from tradeledger.errors import StorageError
from tradeledger.models.option_symbol import OptionRight
from tradeledger.pipeline.strategy_engine.adapters import execution_to_snapshot
from tradeledger.pipeline.strategy_engine.constants import BWB, CREDIT_SPREAD
from tradeledger.pipeline.strategy_engine.types import (
    ButterflyScope,
    ExecutionSnapshot,
    SpreadKey,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Outcome of one save_executions() call."""
    inserted: int = 0
    duplicates_skipped: int = 0


_EXECUTION_FIELDS = (
    "fingerprint", "broker", "account", "executed_at", "symbol", "description",
    "action", "quantity", "price", "fees", "net_amount", "currency",
    "source_file", "source_row_number", "raw_row_json",
)


class DatabaseManager:
    def __init__(self, db_url: str = None, db_path: str = None):
        if db_url is None and db_path is not None:
            db_url = f"sqlite:///{db_path}"
        self.db_url = db_url or get_database_url()
        self._initialized = False

    def ensure_initialized(self):
        """Ensure database is initialized (for standalone scripts)"""
        if not self._initialized:
            self.initialize_database()

    def initialize_database(self):
        """Create the engine and all tables"""
        logger.info("Starting database initialization...")
        sa_engine.init_engine(self.db_url)
        try:
            Base.metadata.create_all(sa_engine.get_engine())
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to initialize database: {exc}") from exc
        self._initialized = True
        logger.info("Database initialization complete")

    @contextmanager
    def get_session(self, operation: str = "read from database"):
        """Transactional session scope (commit on success, rollback on error).

        Any SQLAlchemy failure, read or write, surfaces as StorageError.
        """
        self.ensure_initialized()
        try:
            with sa_engine.get_session() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to {operation}: {exc}") from exc

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    def save_executions(self, executions: List[Dict[str, Any]]) -> ImportResult:
        """Insert executions whose fingerprint is new for their (broker, account).

        Rows without a fingerprint and rows repeating a fingerprint already
        stored (or seen earlier in the same batch) are skipped and counted.
        """
        rows = [e for e in executions if (e.get("fingerprint") or "").strip()]
        if not rows:
            return ImportResult(duplicates_skipped=len(executions))

        by_scope: Dict[tuple, Set[str]] = defaultdict(set)
        for e in rows:
            by_scope[(e["broker"], e["account"])].add(e["fingerprint"])

        with self.get_session("save executions") as session:
            existing: Set[tuple] = set()
            for (broker, account), fps in by_scope.items():
                q = session.query(Execution.fingerprint).filter(
                    Execution.broker == broker,
                    Execution.account == account,
                    Execution.fingerprint.in_(fps),
                )
                existing.update((broker, account, fp) for (fp,) in q.all())

            saved_count = 0
            for e in rows:
                key = (e["broker"], e["account"], e["fingerprint"])
                if key in existing:
                    continue  # Skip duplicates
                existing.add(key)
                session.add(Execution(**{k: e[k] for k in _EXECUTION_FIELDS if k in e}))
                saved_count += 1

        result = ImportResult(saved_count, len(executions) - saved_count)
        logger.info("Saved %d executions (%d duplicates skipped)",
                    result.inserted, result.duplicates_skipped)
        return result

    def get_executions(
        self,
        broker: str,
        account: str,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Execution]:
        """Executions of one scope ordered by execution time"""
        with self.get_session() as session:
            q = session.query(Execution).filter(
                Execution.broker == broker,
                Execution.account == account,
            )
            if newest_first:
                q = q.order_by(Execution.executed_at.desc(), Execution.id.desc())
            else:
                q = q.order_by(Execution.executed_at.asc(), Execution.id.asc())
            if limit:
                q = q.limit(limit)
            return q.all()

    def get_execution_snapshots(self, broker: str, account: str) -> List[ExecutionSnapshot]:
        return [execution_to_snapshot(row) for row in self.get_executions(broker, account)]

    def count_executions(self, broker: str, account: str) -> int:
        with self.get_session() as session:
            return session.query(Execution).filter(
                Execution.broker == broker,
                Execution.account == account,
            ).count()

    # ------------------------------------------------------------------
    # Existing-group lookups used by the matchers
    # ------------------------------------------------------------------

    def get_existing_spread_keys(self, broker: str, account: str) -> Set[SpreadKey]:
        with self.get_session() as session:
            rows = session.query(
                TradeGroup.underlying, TradeGroup.expiration, TradeGroup.right,
                TradeGroup.short_strike, TradeGroup.long_strike,
            ).filter(
                TradeGroup.broker == broker,
                TradeGroup.account == account,
                TradeGroup.strategy_type == CREDIT_SPREAD,
            ).all()
        return {
            SpreadKey(und, exp, OptionRight(right), short, long)
            for und, exp, right, short, long in rows
        }

    def get_existing_butterfly_leg_sets(
        self, broker: str, account: str,
    ) -> Dict[ButterflyScope, List[FrozenSet[Decimal]]]:
        with self.get_session() as session:
            rows = session.query(
                TradeGroup.id, TradeGroup.underlying, TradeGroup.expiration,
                TradeGroup.right, TradeGroup.open_date, TradeGroupLeg.strike,
            ).join(
                TradeGroupLeg, TradeGroupLeg.trade_group_id == TradeGroup.id,
            ).filter(
                TradeGroup.broker == broker,
                TradeGroup.account == account,
                TradeGroup.strategy_type == BWB,
            ).all()

        strikes_by_group: Dict[int, Set[Decimal]] = defaultdict(set)
        scope_by_group: Dict[int, ButterflyScope] = {}
        for gid, und, exp, right, open_date, strike in rows:
            strikes_by_group[gid].add(strike)
            scope_by_group[gid] = ButterflyScope(und, exp, OptionRight(right), open_date)

        result: Dict[ButterflyScope, List[FrozenSet[Decimal]]] = defaultdict(list)
        for gid, strikes in strikes_by_group.items():
            result[scope_by_group[gid]].append(frozenset(strikes))
        return dict(result)

    # ------------------------------------------------------------------
    # Trade group reads
    # ------------------------------------------------------------------

    def get_trade_groups(
        self,
        broker: str,
        account: str,
        strategy: Optional[str] = None,
        open_only: bool = False,
        limit: Optional[int] = None,
    ) -> List[TradeGroup]:
        """Groups of one scope, newest open date first"""
        with self.get_session() as session:
            q = session.query(TradeGroup).filter(
                TradeGroup.broker == broker,
                TradeGroup.account == account,
            )
            if strategy:
                q = q.filter(TradeGroup.strategy_type == strategy)
            if open_only:
                q = q.filter(TradeGroup.close_date.is_(None))
            q = q.order_by(TradeGroup.open_date.desc(), TradeGroup.id.desc())
            if limit:
                q = q.limit(limit)
            return q.all()

    def get_closed_trade_groups(self, broker: str, account: str) -> List[TradeGroup]:
        with self.get_session() as session:
            return session.query(TradeGroup).filter(
                TradeGroup.broker == broker,
                TradeGroup.account == account,
                TradeGroup.close_date.isnot(None),
            ).order_by(TradeGroup.close_date.asc(), TradeGroup.id.asc()).all()

    def get_trade_group(self, group_id: int) -> Optional[TradeGroup]:
        with self.get_session() as session:
            return session.get(TradeGroup, group_id)

    def get_group_executions(self, group_id: int) -> List[Execution]:
        """Linked executions of a group in execution-time order"""
        with self.get_session() as session:
            return session.query(Execution).join(
                TradeGroupExecution, TradeGroupExecution.execution_id == Execution.id,
            ).filter(
                TradeGroupExecution.trade_group_id == group_id,
            ).order_by(Execution.executed_at.asc(), Execution.id.asc()).all()

    def get_group_legs(self, group_id: int) -> List[TradeGroupLeg]:
        with self.get_session() as session:
            return session.query(TradeGroupLeg).filter(
                TradeGroupLeg.trade_group_id == group_id,
            ).order_by(TradeGroupLeg.strike.asc()).all()

    def get_executions_by_group(self, group_ids: Iterable[int]) -> Dict[int, List[ExecutionSnapshot]]:
        """Linked executions for many groups in one query"""
        group_ids = list(group_ids)
        if not group_ids:
            return {}
        with self.get_session() as session:
            rows = session.query(TradeGroupExecution.trade_group_id, Execution).join(
                Execution, TradeGroupExecution.execution_id == Execution.id,
            ).filter(
                TradeGroupExecution.trade_group_id.in_(group_ids),
            ).order_by(Execution.executed_at.asc(), Execution.id.asc()).all()

        result: Dict[int, List[ExecutionSnapshot]] = defaultdict(list)
        for gid, ex in rows:
            result[gid].append(execution_to_snapshot(ex))
        return dict(result)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_groups(self, broker: Optional[str] = None, account: Optional[str] = None) -> int:
        """Delete groups (with their legs and links), optionally for one scope"""
        with self.get_session("clear trade groups") as session:
            q = session.query(TradeGroup.id)
            if broker:
                q = q.filter(TradeGroup.broker == broker)
            if account:
                q = q.filter(TradeGroup.account == account)
            group_ids = [r[0] for r in q.all()]
            if not group_ids:
                return 0

            session.query(TradeGroupExecution).filter(
                TradeGroupExecution.trade_group_id.in_(group_ids),
            ).delete(synchronize_session=False)
            session.query(TradeGroupLeg).filter(
                TradeGroupLeg.trade_group_id.in_(group_ids),
            ).delete(synchronize_session=False)
            session.query(TradeGroup).filter(
                TradeGroup.id.in_(group_ids),
            ).delete(synchronize_session=False)

        logger.info("Deleted %d trade groups", len(group_ids))
        return len(group_ids)

    def reset_scope(self, broker: str, account: str) -> int:
        """Delete all groups and executions of one (broker, account) scope"""
        self.clear_groups(broker, account)
        with self.get_session(f"reset {broker}/{account}") as session:
            deleted = session.query(Execution).filter(
                Execution.broker == broker,
                Execution.account == account,
            ).delete(synchronize_session=False)

        logger.info("Deleted %d executions for %s/%s", deleted, broker, account)
        return deleted
