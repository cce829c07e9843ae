"""
Tests for DatabaseManager: idempotent execution import, ordered reads and
scope maintenance.  Each test runs against a fresh temporary SQLite file.
"""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import text

from tradeledger.database import engine as sa_engine
from tradeledger.database.models import Execution, TradeGroup
from tradeledger.errors import StorageError
from tradeledger.pipeline.orchestrator import group_spreads, run_matching_pass
from tests.conftest import make_execution, put


def _spread(account="ACCT1", day=10):
    when = datetime(2026, 2, day, 9, 30)
    return [
        make_execution(account=account, executed_at=when, action="Sell to Open",
                       symbol=put(6800), quantity=-1, price=2.50),
        make_execution(account=account, executed_at=when, action="Buy to Open",
                       symbol=put(6790), quantity=1, price=1.00),
    ]


class TestSaveExecutions:

    def test_inserts_new_rows(self, db):
        result = db.save_executions(_spread())
        assert result.inserted == 2
        assert result.duplicates_skipped == 0
        assert db.count_executions("Schwab", "ACCT1") == 2

    def test_reimport_skips_everything(self, db):
        db.save_executions(_spread())
        result = db.save_executions(_spread())
        assert result.inserted == 0
        assert result.duplicates_skipped == 2
        assert db.count_executions("Schwab", "ACCT1") == 2

    def test_duplicates_within_one_batch(self, db):
        row = _spread()[0]
        result = db.save_executions([row, dict(row)])
        assert result.inserted == 1
        assert result.duplicates_skipped == 1

    def test_same_fingerprint_in_other_account_is_new(self, db):
        row = _spread()[0]
        other = dict(row, account="ACCT2")
        result = db.save_executions([row, other])
        assert result.inserted == 2

    def test_blank_fingerprint_is_skipped(self, db):
        row = dict(_spread()[0], fingerprint="  ")
        result = db.save_executions([row])
        assert result.inserted == 0
        assert result.duplicates_skipped == 1

    def test_values_round_trip_as_decimals(self, db):
        db.save_executions(_spread())
        sto = db.get_executions("Schwab", "ACCT1")[0]
        assert sto.net_amount == Decimal("249.34")
        assert sto.fees == Decimal("0.66")
        assert sto.quantity == Decimal("-1")


class TestExecutionReads:

    def test_time_order_and_limit(self, db):
        db.save_executions(_spread(day=12) + _spread(day=10))
        rows = db.get_executions("Schwab", "ACCT1")
        assert [r.executed_at.day for r in rows] == [10, 10, 12, 12]

        newest = db.get_executions("Schwab", "ACCT1", limit=1, newest_first=True)
        assert len(newest) == 1
        assert newest[0].executed_at.day == 12

    def test_snapshots_are_scoped(self, db):
        db.save_executions(_spread("ACCT1") + _spread("ACCT2"))
        snaps = db.get_execution_snapshots("Schwab", "ACCT1")
        assert len(snaps) == 2
        assert all(isinstance(s.net_amount, Decimal) for s in snaps)


class TestGroupReads:

    def test_existing_spread_keys(self, db):
        db.save_executions(_spread())
        run_matching_pass(db, "Schwab", "ACCT1", kinds=("CreditSpread",))

        keys = db.get_existing_spread_keys("Schwab", "ACCT1")
        assert len(keys) == 1
        key = next(iter(keys))
        assert (key.short_strike, key.long_strike) == (Decimal("6800"), Decimal("6790"))
        assert db.get_existing_spread_keys("Schwab", "ACCT2") == set()

    def test_group_listing_order(self, db):
        db.save_executions(_spread(day=10))
        run_matching_pass(db, "Schwab", "ACCT1", kinds=("CreditSpread",))
        db.save_executions([
            make_execution(executed_at=datetime(2026, 2, 11, 9, 30), action="Sell to Open",
                           symbol=put(6700), quantity=-1, price=2.0),
            make_execution(executed_at=datetime(2026, 2, 11, 9, 30), action="Buy to Open",
                           symbol=put(6690), quantity=1, price=1.0),
        ])
        run_matching_pass(db, "Schwab", "ACCT1", kinds=("CreditSpread",))

        groups = db.get_trade_groups("Schwab", "ACCT1")
        assert [g.open_date.day for g in groups] == [11, 10]
        assert len(db.get_trade_groups("Schwab", "ACCT1", limit=1)) == 1
        assert db.get_trade_groups("Schwab", "ACCT1", strategy="BWB") == []
        assert len(db.get_trade_groups("Schwab", "ACCT1", open_only=True)) == 2
        assert db.get_closed_trade_groups("Schwab", "ACCT1") == []

    def test_group_executions(self, db):
        db.save_executions(_spread())
        run_matching_pass(db, "Schwab", "ACCT1", kinds=("CreditSpread",))
        group = db.get_trade_groups("Schwab", "ACCT1")[0]

        assert db.get_trade_group(group.id).id == group.id
        assert db.get_trade_group(9999) is None
        assert [e.action for e in db.get_group_executions(group.id)] == ["Sell to Open", "Buy to Open"]
        assert db.get_group_legs(group.id) == []

        by_group = db.get_executions_by_group([group.id])
        assert len(by_group[group.id]) == 2
        assert db.get_executions_by_group([]) == {}


class TestMaintenance:

    def test_clear_groups_for_one_scope(self, db):
        db.save_executions(_spread("ACCT1") + _spread("ACCT2"))
        run_matching_pass(db, "Schwab", "ACCT1")
        run_matching_pass(db, "Schwab", "ACCT2")

        assert db.clear_groups("Schwab", "ACCT1") == 1
        assert db.get_trade_groups("Schwab", "ACCT1") == []
        assert len(db.get_trade_groups("Schwab", "ACCT2")) == 1
        assert db.count_executions("Schwab", "ACCT1") == 2

    def test_clear_all_groups(self, db):
        db.save_executions(_spread("ACCT1") + _spread("ACCT2"))
        run_matching_pass(db, "Schwab", "ACCT1")
        run_matching_pass(db, "Schwab", "ACCT2")

        assert db.clear_groups() == 2
        with db.get_session() as session:
            assert session.query(TradeGroup).count() == 0

    def test_clear_groups_when_empty(self, db):
        assert db.clear_groups("Schwab", "ACCT1") == 0

    def test_reset_scope(self, db):
        db.save_executions(_spread("ACCT1") + _spread("ACCT2"))
        run_matching_pass(db, "Schwab", "ACCT1")

        assert db.reset_scope("Schwab", "ACCT1") == 2
        with db.get_session() as session:
            assert session.query(Execution).filter_by(account="ACCT1").count() == 0
            assert session.query(Execution).filter_by(account="ACCT2").count() == 2
            assert session.query(TradeGroup).count() == 0


class TestStorageFailures:

    @staticmethod
    def _drop_executions(db):
        with sa_engine.get_engine().begin() as conn:
            conn.execute(text("DROP TABLE executions"))

    def test_failed_read_raises_storage_error(self, db):
        self._drop_executions(db)
        with pytest.raises(StorageError, match="no such table"):
            db.count_executions("Schwab", "ACCT1")
        with pytest.raises(StorageError):
            db.get_execution_snapshots("Schwab", "ACCT1")

    def test_pass_over_broken_store_raises_storage_error(self, db):
        self._drop_executions(db)
        with pytest.raises(StorageError):
            group_spreads(db, "Schwab", "ACCT1")

    def test_failed_write_raises_storage_error(self, db):
        self._drop_executions(db)
        with pytest.raises(StorageError, match="save executions"):
            db.save_executions(_spread())
