"""Report service — per-group risk rows, dashboard KPIs and bucketed stats."""

import calendar
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from tradeledger.database.db_manager import DatabaseManager
from tradeledger.database.models import TradeGroup
from tradeledger.models.execution_classifier import is_open
from tradeledger.pipeline.metrics import (
    RiskMetrics,
    compute_risk_metrics,
    days_to_expiration,
    total_fees,
)
from tradeledger.pipeline.strategy_engine import ExecutionSnapshot
from tradeledger.pipeline.strategy_engine.constants import CREDIT_SPREAD

ZERO = Decimal("0")

DTE_BUCKETS: Tuple[Tuple[str, Optional[int]], ...] = (
    ("0-1", 1),
    ("2-3", 3),
    ("4-7", 7),
    ("8-14", 14),
    ("15-30", 30),
    ("31+", None),
)


def dte_bucket(dte: int) -> str:
    for label, upper in DTE_BUCKETS:
        if upper is None or dte <= upper:
            return label
    return DTE_BUCKETS[-1][0]


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


# ---------------------------------------------------------------------------
# Per-group rows
# ---------------------------------------------------------------------------

@dataclass
class GroupRow:
    """A stored group plus its reporting-only figures."""
    group: TradeGroup
    risk: RiskMetrics
    total_fees: Decimal
    return_gross: Decimal
    net_return_pct: Optional[Decimal]

    @property
    def is_closed(self) -> bool:
        return self.group.close_date is not None

    def to_dict(self) -> Dict:
        data = self.group.to_dict()
        data.update({k: _jsonable(v) for k, v in asdict(self.risk).items()})
        data["total_fees"] = _jsonable(self.total_fees)
        data["return_gross"] = _jsonable(self.return_gross)
        data["net_return_pct"] = _jsonable(self.net_return_pct)
        return data


def net_return_pct(group: TradeGroup, execs: Sequence[ExecutionSnapshot]) -> Optional[Decimal]:
    """Net P/L over the entry credit before fees, for closed credit spreads only."""
    if group.close_date is None or group.strategy_type != CREDIT_SPREAD:
        return None
    opens = [ex for ex in execs if is_open(ex.action)]
    credit_before_fees = sum((ex.net_amount for ex in opens), ZERO) + total_fees(opens)
    if credit_before_fees <= 0:
        return None
    return group.net_pl / credit_before_fees * 100


def make_group_rows(
    groups: Sequence[TradeGroup],
    execs_by_group: Dict[int, List[ExecutionSnapshot]],
) -> List[GroupRow]:
    rows = []
    for group in groups:
        execs = execs_by_group.get(group.id, [])
        risk = compute_risk_metrics(group, execs)
        if risk.sign_warning:
            logger.warning(f"Group {group.id} closed with zero entry credit (check import/signs)")
        fees = total_fees(execs)
        rows.append(GroupRow(
            group=group,
            risk=risk,
            total_fees=fees,
            return_gross=group.net_pl + fees,
            net_return_pct=net_return_pct(group, execs),
        ))
    return rows


def build_group_rows(
    db: DatabaseManager,
    broker: str,
    account: str,
    strategy: Optional[str] = None,
    open_only: bool = False,
    limit: Optional[int] = None,
) -> List[GroupRow]:
    groups = db.get_trade_groups(broker, account, strategy=strategy,
                                 open_only=open_only, limit=limit)
    execs_by_group = db.get_executions_by_group(g.id for g in groups)
    return make_group_rows(groups, execs_by_group)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

@dataclass
class BucketStats:
    label: str
    trades: int
    wins: int
    losses: int
    win_rate: Decimal
    profit_factor: Decimal
    avg_pl: Decimal
    avg_win: Decimal
    avg_loss: Decimal
    total_pl: Decimal
    min_dte: Optional[int] = None
    max_dte: Optional[int] = None

    def to_dict(self) -> Dict:
        return {k: _jsonable(v) for k, v in asdict(self).items()}


def profit_factor(pls: Iterable[Decimal]) -> Decimal:
    """Gross wins over gross losses; 0 when there are no losses."""
    pls = list(pls)
    gross_win = sum((p for p in pls if p > 0), ZERO)
    gross_loss = sum((-p for p in pls if p < 0), ZERO)
    return ZERO if gross_loss == 0 else gross_win / gross_loss


def max_drawdown(pls: Iterable[Decimal]) -> Decimal:
    """Largest peak-to-trough drop of the cumulative P/L curve (peak starts at 0)."""
    equity = peak = worst = ZERO
    for pl in pls:
        equity += pl
        if equity > peak:
            peak = equity
        if peak - equity > worst:
            worst = peak - equity
    return worst


def summarize(label: str, pls: Sequence[Decimal], dtes: Sequence[int] = ()) -> BucketStats:
    n = len(pls)
    winners = [p for p in pls if p > 0]
    losers = [p for p in pls if p < 0]
    total = sum(pls, ZERO)
    return BucketStats(
        label=label,
        trades=n,
        wins=len(winners),
        losses=len(losers),
        win_rate=Decimal(len(winners)) / n if n else ZERO,
        profit_factor=profit_factor(pls),
        avg_pl=total / n if n else ZERO,
        avg_win=sum(winners, ZERO) / len(winners) if winners else ZERO,
        avg_loss=sum(losers, ZERO) / len(losers) if losers else ZERO,
        total_pl=total,
        min_dte=min(dtes) if dtes else None,
        max_dte=max(dtes) if dtes else None,
    )


def dte_stats(groups: Sequence[TradeGroup]) -> List[BucketStats]:
    """Closed groups bucketed by DTE at open, in bucket order."""
    buckets: Dict[str, List[Tuple[Decimal, int]]] = OrderedDict((label, []) for label, _ in DTE_BUCKETS)
    for g in groups:
        if g.close_date is None:
            continue
        dte = days_to_expiration(g.open_date, g.expiration)
        buckets[dte_bucket(dte)].append((g.net_pl, dte))
    return [
        summarize(label, [pl for pl, _ in rows], [d for _, d in rows])
        for label, rows in buckets.items() if rows
    ]


def weekday_stats(groups: Sequence[TradeGroup]) -> List[BucketStats]:
    """Closed groups bucketed by the weekday of their close date, Monday first."""
    by_day: Dict[int, List[Decimal]] = {}
    for g in groups:
        if g.close_date is None:
            continue
        by_day.setdefault(g.close_date.weekday(), []).append(g.net_pl)
    return [summarize(calendar.day_name[d], by_day[d]) for d in sorted(by_day)]


def stats_by_dte(db: DatabaseManager, broker: str, account: str) -> List[BucketStats]:
    return dte_stats(db.get_closed_trade_groups(broker, account))


def stats_by_weekday(db: DatabaseManager, broker: str, account: str) -> List[BucketStats]:
    return weekday_stats(db.get_closed_trade_groups(broker, account))


def build_dashboard(db: DatabaseManager, broker: str, account: str, take: int = 200) -> Dict:
    """Dashboard payload: KPIs over closed groups among the newest ``take`` groups.

    Includes the group rows, P/L by close year and month, and DTE buckets.
    """
    rows = build_group_rows(db, broker, account, limit=take)
    closed = sorted(
        (r for r in rows if r.is_closed),
        key=lambda r: (r.group.close_date, r.group.id),
    )
    pls = [r.group.net_pl for r in closed]
    overall = summarize("all", pls)

    by_year: Dict[str, Decimal] = OrderedDict()
    by_month: Dict[str, Decimal] = OrderedDict()
    for r in closed:
        d = r.group.close_date
        by_year[str(d.year)] = by_year.get(str(d.year), ZERO) + r.group.net_pl
        month = f"{d.year}-{d.month:02d}"
        by_month[month] = by_month.get(month, ZERO) + r.group.net_pl

    logger.debug(f"Dashboard {broker}/{account}: {len(rows)} groups, {len(closed)} closed")

    return {
        "broker": broker,
        "account": account,
        "kpis": {
            "trades": overall.trades,
            "total_pl": float(overall.total_pl),
            "gross_return": float(sum((r.return_gross for r in closed), ZERO)),
            "win_rate": float(overall.win_rate),
            "profit_factor": float(overall.profit_factor),
            "avg_pl": float(overall.avg_pl),
            "max_drawdown": float(max_drawdown(pls)),
        },
        "trades": [r.to_dict() for r in rows],
        "by_year": [{"label": k, "value": float(v)} for k, v in by_year.items()],
        "by_month": [{"label": k, "value": float(v)} for k, v in by_month.items()],
        "by_dte_bucket": [b.to_dict() for b in dte_stats([r.group for r in closed])],
    }
