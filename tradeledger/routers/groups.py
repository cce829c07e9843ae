"""Trade group routes — group listing with risk figures, group executions."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from tradeledger.config import get_default_broker
from tradeledger.database.db_manager import DatabaseManager
from tradeledger.dependencies import get_db
from tradeledger.models.option_symbol import format_contract, parse_option_symbol
from tradeledger.services.report_service import build_group_rows

router = APIRouter()


@router.get("/api/groups")
async def list_groups(
    account: str,
    broker: Optional[str] = None,
    strategy: Optional[str] = None,
    open_only: bool = False,
    take: int = Query(25, ge=1, le=1000),
    db: DatabaseManager = Depends(get_db),
):
    """Trade groups of one account, newest open date first"""
    broker = broker or get_default_broker()
    rows = build_group_rows(db, broker, account, strategy=strategy,
                            open_only=open_only, limit=take)
    logger.debug(f"Listing {len(rows)} groups for {broker}/{account}")
    return {"groups": [r.to_dict() for r in rows], "count": len(rows)}


@router.get("/api/groups/{group_id}/executions")
async def get_group_executions(group_id: int, db: DatabaseManager = Depends(get_db)):
    """Linked executions of one group in execution-time order"""
    group = db.get_trade_group(group_id)
    if group is None:
        raise HTTPException(status_code=404, detail=f"TradeGroup not found: {group_id}")

    executions = []
    for ex in db.get_group_executions(group_id):
        row = ex.to_dict()
        contract = parse_option_symbol(ex.symbol)
        row["contract"] = format_contract(contract) if contract else None
        executions.append(row)

    return {
        "group": group.to_dict(),
        "legs": [leg.to_dict() for leg in db.get_group_legs(group_id)],
        "executions": executions,
    }
