"""
SQLAlchemy 2.0 declarative models for all TradeLedger tables.

Executions are append-only facts written by the importers.  TradeGroups,
their legs and the group/execution links are written only by the matching
passes in tradeledger.pipeline.  Money, quantity and strike columns are Numeric so
that strike matching and quantity netting compare exact decimals.
"""

from datetime import datetime, date as date_type
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship


# ---------------------------------------------------------------------------
# Base class with to_dict() for JSON serialization
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base with a generic to_dict() helper."""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize all columns to a plain dict of JSON-friendly values."""
        result = {}
        for col in self.__table__.columns:
            value = getattr(self, col.key)
            if isinstance(value, (datetime, date_type)):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = float(value)
            result[col.key] = value
        return result


# ---------------------------------------------------------------------------
# Executions (one row per broker fill)
# ---------------------------------------------------------------------------

class Execution(Base):
    __tablename__ = "executions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fingerprint = Column(String(128), nullable=False)
    broker = Column(String(32), nullable=False, default="Schwab")
    account = Column(String, nullable=False)
    executed_at = Column(DateTime, nullable=False)
    symbol = Column(String, nullable=False, default="")
    description = Column(String(2048), default="")
    action = Column(String, nullable=False, default="")
    quantity = Column(Numeric(18, 4), nullable=True)
    price = Column(Numeric(18, 4), nullable=True)
    fees = Column(Numeric(18, 4), nullable=False, default=0)
    net_amount = Column(Numeric(18, 4), nullable=False, default=0)
    currency = Column(String(8), default="USD")
    source_file = Column(String, default="")
    source_row_number = Column(Integer, default=0)
    raw_row_json = Column(Text, default="{}")
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("broker", "account", "fingerprint", name="uq_executions_fingerprint"),
        Index("idx_executions_scope_time", "broker", "account", "executed_at", "symbol"),
    )


# ---------------------------------------------------------------------------
# Trade groups (reconstructed strategies)
# ---------------------------------------------------------------------------

class TradeGroup(Base):
    __tablename__ = "trade_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    broker = Column(String(32), nullable=False)
    account = Column(String, nullable=False)
    strategy_type = Column(String(32), nullable=False)  # CreditSpread / BWB
    setup = Column(String, default="")
    underlying = Column(String(32), nullable=False)
    expiration = Column(Date, nullable=False)
    right = Column(String(8), nullable=False)  # Call / Put
    # NULL for BWB groups; their strikes live in trade_group_legs
    short_strike = Column(Numeric(18, 4), nullable=True)
    long_strike = Column(Numeric(18, 4), nullable=True)
    open_date = Column(Date, nullable=False)
    close_date = Column(Date, nullable=True)
    net_pl = Column(Numeric(18, 4), nullable=False, default=0)
    gross_return = Column(Numeric(18, 4), nullable=False, default=0)
    gross_mode = Column(String(16), nullable=False, default="entry_exit")  # GrossReturnMode the group was built with
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # relationships
    legs = relationship("TradeGroupLeg", back_populates="group",
                        cascade="all, delete-orphan", passive_deletes=True)
    execution_links = relationship("TradeGroupExecution", back_populates="group",
                                   cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint(
            "broker", "account", "underlying", "expiration", "right",
            "short_strike", "long_strike", "open_date",
            name="uq_trade_groups_natural_key",
        ),
        Index("idx_trade_groups_scope", "broker", "account"),
        Index("idx_trade_groups_open_date", "open_date"),
        Index("idx_trade_groups_strategy", "strategy_type"),
    )


class TradeGroupLeg(Base):
    __tablename__ = "trade_group_legs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trade_group_id = Column(Integer, ForeignKey("trade_groups.id", ondelete="CASCADE"),
                            nullable=False)
    underlying = Column(String(32), nullable=False)
    expiration = Column(Date, nullable=False)
    right = Column(String(8), nullable=False)
    strike = Column(Numeric(18, 4), nullable=False)
    # + = net long contracts, - = net short contracts
    quantity = Column(Numeric(18, 4), nullable=False)
    role = Column(String(32), default="")  # Wing / Body

    # relationships
    group = relationship("TradeGroup", back_populates="legs")

    __table_args__ = (
        Index("idx_trade_group_legs_group", "trade_group_id"),
    )


class TradeGroupExecution(Base):
    __tablename__ = "trade_group_executions"

    trade_group_id = Column(Integer, ForeignKey("trade_groups.id", ondelete="CASCADE"),
                            primary_key=True)
    execution_id = Column(Integer, ForeignKey("executions.id"), primary_key=True)

    # relationships
    group = relationship("TradeGroup", back_populates="execution_links")
    execution = relationship("Execution")

    __table_args__ = (
        Index("idx_trade_group_executions_exec", "execution_id"),
    )
