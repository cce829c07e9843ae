"""
Shared pytest fixtures and execution factory helpers for TradeLedger tests.

Each test gets a fresh temporary SQLite database (auto-cleaned by pytest).
"""

import itertools
from datetime import datetime
from decimal import Decimal

import pytest

from tradeledger.database.db_manager import DatabaseManager
from tradeledger.importers.schwab_csv import compute_fingerprint
from tradeledger.models.execution_classifier import is_sell
from tradeledger.pipeline.strategy_engine import ExecutionSnapshot, parse_option_executions


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db(tmp_path):
    """Temporary SQLite database, fully initialized and auto-cleaned."""
    db_manager = DatabaseManager(db_path=str(tmp_path / "test.db"))
    db_manager.initialize_database()
    return db_manager


@pytest.fixture(autouse=True)
def _log_dir(tmp_path, monkeypatch):
    """Keep loguru file sinks created by entry points out of the working tree."""
    monkeypatch.setenv("TRADELEDGER_LOG_DIR", str(tmp_path / "logs"))


# ---------------------------------------------------------------------------
# Execution factory helpers
# ---------------------------------------------------------------------------

def D(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _default_net(action, quantity, price, fees):
    """Broker-style net amount: premium in for sells, out for buys, fees always out."""
    premium = D(price) * abs(D(quantity)) * 100
    return (premium if is_sell(action) else -premium) - D(fees)


def make_execution(
    *,
    account="ACCT1",
    broker="Schwab",
    executed_at=datetime(2026, 2, 10, 9, 30),
    action="Sell to Open",
    symbol="SPX 02/20/2026 6800.00 P",
    quantity=1,
    price=2.50,
    fees=0.66,
    net_amount=None,
    description="",
):
    """Build an execution dict suitable for DatabaseManager.save_executions()."""
    quantity = None if quantity is None else D(quantity)
    price = None if price is None else D(price)
    fees = D(fees)
    if net_amount is None:
        net_amount = _default_net(action, quantity or 0, price or 0, fees)
    net_amount = D(net_amount)
    return {
        "broker": broker,
        "account": account,
        "executed_at": executed_at,
        "action": action,
        "symbol": symbol,
        "description": description,
        "quantity": quantity,
        "price": price,
        "fees": fees,
        "net_amount": net_amount,
        "currency": "USD",
        "fingerprint": compute_fingerprint(
            broker, account, executed_at, action, symbol,
            quantity, price, net_amount, fees,
        ),
        "source_file": "test.csv",
        "source_row_number": 0,
        "raw_row_json": "{}",
    }


_snapshot_ids = itertools.count(1)


def make_snapshot(
    *,
    id=None,
    executed_at=datetime(2026, 2, 10, 9, 30),
    action="Sell to Open",
    symbol="SPX 02/20/2026 6800.00 P",
    quantity=1,
    price=2.50,
    fees=0.66,
    net_amount=None,
):
    """Build an in-memory ExecutionSnapshot for the pure matchers and metrics."""
    quantity = None if quantity is None else D(quantity)
    price = None if price is None else D(price)
    fees = D(fees)
    if net_amount is None:
        net_amount = _default_net(action, quantity or 0, price or 0, fees)
    return ExecutionSnapshot(
        id=next(_snapshot_ids) if id is None else id,
        executed_at=executed_at,
        symbol=symbol,
        action=action,
        quantity=quantity,
        price=price,
        fees=fees,
        net_amount=D(net_amount),
    )


def option_execs(*snapshots):
    """Parse snapshots into OptionExecutions (non-options are dropped)."""
    return parse_option_executions(list(snapshots))


def put(strike, expiration="02/20/2026", underlying="SPX"):
    return f"{underlying} {expiration} {strike} P"


def call(strike, expiration="02/20/2026", underlying="SPX"):
    return f"{underlying} {expiration} {strike} C"
