"""Report routes — dashboard KPIs, DTE and weekday stats."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from loguru import logger

from tradeledger.config import get_default_broker
from tradeledger.database.db_manager import DatabaseManager
from tradeledger.dependencies import get_db
from tradeledger.services.report_service import (
    build_dashboard,
    stats_by_dte,
    stats_by_weekday,
)

router = APIRouter()


@router.get("/api/dashboard")
async def get_dashboard_data(
    account: str,
    broker: Optional[str] = None,
    take: int = Query(200, ge=1, le=5000),
    db: DatabaseManager = Depends(get_db),
):
    """KPIs, trade rows and P/L buckets for one account"""
    broker = broker or get_default_broker()
    logger.info(f"Building dashboard for {broker}/{account}")
    return build_dashboard(db, broker, account, take=take)


@router.get("/api/stats/dte")
async def get_dte_stats(
    account: str,
    broker: Optional[str] = None,
    db: DatabaseManager = Depends(get_db),
):
    """Closed-trade stats by days-to-expiration at open"""
    broker = broker or get_default_broker()
    return {"buckets": [b.to_dict() for b in stats_by_dte(db, broker, account)]}


@router.get("/api/stats/weekday")
async def get_weekday_stats(
    account: str,
    broker: Optional[str] = None,
    db: DatabaseManager = Depends(get_db),
):
    """Closed-trade stats by weekday of the close date"""
    broker = broker or get_default_broker()
    return {"days": [b.to_dict() for b in stats_by_weekday(db, broker, account)]}
