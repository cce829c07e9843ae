#!/usr/bin/env python3
"""
TradeLedger command line interface.

Usage:
    tradeledger import-schwab --account Schwab1 --file schwab.csv
    tradeledger group-spreads --account Schwab1
    tradeledger list-groups --account Schwab1 --open-only
"""

import argparse
import logging
import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from loguru import logger

from tradeledger.config import (
    get_default_broker,
    get_log_dir,
    get_log_level,
    load_settings,
    resolve_db_url,
)
from tradeledger.database.db_manager import DatabaseManager
from tradeledger.errors import FeedError, StorageError
from tradeledger.importers.schwab_csv import SchwabCsvImporter
from tradeledger.models.option_symbol import format_contract, parse_option_symbol
from tradeledger.pipeline.orchestrator import (
    PassResult,
    group_butterflies,
    group_spreads,
    rebuild_groups,
)
from tradeledger.services.report_service import (
    BucketStats,
    build_group_rows,
    stats_by_dte,
    stats_by_weekday,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_MISSING_FILE = 4

DASH = "—"


def configure_logging(verbose: bool = False) -> None:
    """Console + rotating file sinks for loguru; stdlib logging for library modules."""
    level = "DEBUG" if verbose else get_log_level()
    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        os.path.join(get_log_dir(), "tradeledger_{time}.log"),
        rotation="1 day",
        retention="7 days",
        level=level,
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


def _fmt(value: Optional[Decimal], spec: str = "0.2f") -> str:
    return DASH if value is None else format(value, spec)


def _print_pass(label: str, result: PassResult) -> None:
    print(f"{label}: candidates={result.candidates} created={result.groups_created} "
          f"links={result.links_created} duplicates_skipped={result.duplicates_skipped}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _import_file(db: DatabaseManager, broker: str, account: str, file: str) -> int:
    importer = SchwabCsvImporter(broker=broker)
    executions, summary = importer.import_executions(account, file)
    result = db.save_executions(executions)

    print(f"Rows read: {summary.rows_read}")
    print(f"Executions parsed: {summary.executions_created}")
    print(f"Executions inserted: {result.inserted}")
    print(f"Duplicates skipped: {result.duplicates_skipped}")
    if summary.warnings:
        print()
        print("Warnings:")
        for warning in dict.fromkeys(summary.warnings):
            print(f"- {warning}")
    return EXIT_OK


def cmd_import_schwab(args, db: DatabaseManager) -> int:
    if not Path(args.file).is_file():
        logger.error(f"CSV file not found: {args.file}")
        return EXIT_MISSING_FILE
    return _import_file(db, args.broker, args.account, args.file)


def cmd_reset_schwab(args, db: DatabaseManager) -> int:
    if not args.force:
        print("Refusing to run without --force.")
        print("This command deletes all executions and trade groups of the account.")
        return EXIT_USAGE
    if not Path(args.file).is_file():
        logger.error(f"CSV file not found: {args.file}")
        return EXIT_MISSING_FILE

    print(f"RESET: Clearing data for {args.broker}/{args.account}...")
    db.reset_scope(args.broker, args.account)
    print("RESET: Importing Schwab CSV...")
    return _import_file(db, args.broker, args.account, args.file)


def cmd_list_exec(args, db: DatabaseManager) -> int:
    rows = db.get_executions(args.broker, args.account, limit=args.take, newest_first=True)
    for r in rows:
        print(f"{r.executed_at:%Y-%m-%d %H:%M:%S} | {r.action:<12} | {r.symbol:<20} | "
              f"{_fmt(r.quantity, '>8'):>8} | {_fmt(r.price, '>10'):>10} | "
              f"{r.net_amount:>10} | {r.fees:>8}")
    print(f"Shown: {len(rows)}")
    return EXIT_OK


def cmd_scan_options(args, db: DatabaseManager) -> int:
    rows = db.get_executions(args.broker, args.account, limit=args.take, newest_first=True)
    for r in rows:
        contract = parse_option_symbol(r.symbol)
        if contract is not None:
            print(f"{r.executed_at:%Y-%m-%d} | {r.action:<12} | {format_contract(contract)} | "
                  f"Qty={r.quantity} | Net={r.net_amount}")
        else:
            print(f"{r.executed_at:%Y-%m-%d} | {r.action:<12} | (non-option) '{r.symbol}' | "
                  f"Net={r.net_amount}")
    return EXIT_OK


def cmd_group_spreads(args, db: DatabaseManager) -> int:
    _print_pass("CreditSpread", group_spreads(db, args.broker, args.account))
    return EXIT_OK


def cmd_group_bwb(args, db: DatabaseManager) -> int:
    _print_pass("BWB", group_butterflies(db, args.broker, args.account))
    return EXIT_OK


def cmd_rebuild_groups(args, db: DatabaseManager) -> int:
    _print_pass("Rebuild", rebuild_groups(db, args.broker, args.account))
    return EXIT_OK


def cmd_list_groups(args, db: DatabaseManager) -> int:
    rows = build_group_rows(db, args.broker, args.account, strategy=args.strategy,
                            open_only=args.open_only, limit=args.take)
    if not rows:
        print("No trade groups found.")
        return EXIT_OK

    print("Id    OpenDate    CloseDate   Outcome Und      Exp         R  Strikes            "
          "Qty  W    DTE  Days EntryPx ExitPx  Credit   Debit    NetPL    GrossRsk MaxRisk  "
          "Ret%   BE      ROC/d")
    print("-" * 170)

    for row in rows:
        g, risk = row.group, row.risk
        closed = row.is_closed
        if risk.sign_warning:
            print(f"Warning: Group {g.id} closed with zero entry credit (check import/signs)")

        if g.short_strike is not None:
            strikes = f"{g.short_strike.normalize():f} / {g.long_strike.normalize():f}"
        else:
            strikes = "/".join(f"{leg.strike.normalize():f}" for leg in db.get_group_legs(g.id))

        print(
            f"{g.id:>4}  {g.open_date:%Y-%m-%d}  "
            f"{(format(g.close_date, '%Y-%m-%d') if closed else DASH):<10}  "
            f"{risk.outcome.value:<7} {g.underlying:<7}  {g.expiration:%Y-%m-%d}  "
            f"{(g.right or '?')[0].upper()}  {strikes:<17} "
            f"{_fmt(risk.contracts, '.0f'):>3}  {_fmt(risk.width, '.0f'):>3}  {risk.dte:>4}  "
            f"{(str(risk.days_held) if risk.days_held is not None else ''):>4} "
            f"{_fmt(risk.entry_price):>6}  {_fmt(risk.exit_price if closed else None):>6}  "
            f"{risk.entry_credit:>7.2f}  {_fmt(risk.exit_debit if closed else None):>7}  "
            f"{_fmt(g.net_pl if closed else None):>7}  "
            f"{_fmt(risk.gross_risk if closed else None):>8}  "
            f"{_fmt(risk.max_risk if closed else None):>7}  "
            f"{_fmt(risk.return_pct if closed else None, '.1f'):>5}  "
            f"{_fmt(risk.breakeven if closed else None):>6}  "
            f"{_fmt(risk.roi_per_day if closed else None):>6}"
        )

    print(f"Shown: {len(rows)}")
    return EXIT_OK


def cmd_list_group_exec(args, db: DatabaseManager) -> int:
    if args.group <= 0:
        print("Error: --group <id> must be a positive integer.")
        return EXIT_USAGE

    g = db.get_trade_group(args.group)
    if g is None:
        print(f"TradeGroup not found: {args.group}")
        return EXIT_OK

    execs = db.get_group_executions(g.id)
    close = format(g.close_date, "%Y-%m-%d") if g.close_date else DASH
    print(f"TradeGroup {g.id} | {g.strategy_type} | {g.underlying} {g.expiration:%Y-%m-%d} {g.right} | "
          f"Open={g.open_date:%Y-%m-%d} Close={close} | NetPL={g.net_pl:.2f}")
    print()
    print("Time                | Action        | Qty    | Price    | NetAmt    | Fees   | Contract")
    print("--------------------+---------------+--------+----------+-----------+--------+------------------------------")
    for e in execs:
        contract = parse_option_symbol(e.symbol)
        label = format_contract(contract) if contract else e.symbol
        print(f"{e.executed_at:%Y-%m-%d %H:%M:%S} | {e.action:<13} | {_fmt(e.quantity, '6.0f'):>6} | "
              f"{_fmt(e.price, '8.2f'):>8} | {e.net_amount:>9.2f} | {e.fees:>6.2f} | {label}")
    print()
    print(f"Rows: {len(execs)}")
    return EXIT_OK


def cmd_clear_groups(args, db: DatabaseManager) -> int:
    if args.account:
        deleted = db.clear_groups(args.broker, args.account)
        print(f"Cleared {deleted} TradeGroups for {args.broker}/{args.account}.")
    else:
        deleted = db.clear_groups()
        print(f"Cleared ALL TradeGroups + links + legs ({deleted}).")
    return EXIT_OK


def _print_buckets(title: str, label_header: str, buckets: List[BucketStats], with_dte: bool) -> None:
    if not buckets:
        print("No CLOSED trade groups found.")
        return
    print()
    print(title)
    header = f"{label_header:<9} | Trades | Win%   | PF    | AvgPL    | AvgWin   | AvgLoss  | TotalPL"
    print(header + (" | DTE Range" if with_dte else ""))
    print("-" * (len(header) + (12 if with_dte else 0)))
    for b in buckets:
        line = (f"{b.label:<9} | {b.trades:>6} | {b.win_rate * 100:>5.1f}% | {b.profit_factor:>5.2f} | "
                f"{b.avg_pl:>8.2f} | {b.avg_win:>8.2f} | {b.avg_loss:>8.2f} | {b.total_pl:>8.2f}")
        if with_dte:
            line += f" | {b.min_dte}-{b.max_dte}"
        print(line)


def cmd_stats_dte(args, db: DatabaseManager) -> int:
    _print_buckets("DTE Bucket Stats (closed trades)", "Bucket",
                   stats_by_dte(db, args.broker, args.account), with_dte=True)
    return EXIT_OK


def cmd_stats_daily(args, db: DatabaseManager) -> int:
    _print_buckets("Weekday Stats (closed trades)", "Day",
                   stats_by_weekday(db, args.broker, args.account), with_dte=False)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", help="Database URL or SQLite file path (default: DATABASE_URL)")
    common.add_argument("--broker", default=None, help="Broker name (default: TRADELEDGER_BROKER or Schwab)")
    common.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    account_required = argparse.ArgumentParser(add_help=False)
    account_required.add_argument("--account", required=True, help="Account label")

    parser = argparse.ArgumentParser(
        prog="tradeledger",
        description="Import broker executions and group them into option strategies",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import-schwab", parents=[common, account_required], help="Import a Schwab CSV export")
    p.add_argument("--file", required=True)
    p.set_defaults(func=cmd_import_schwab)

    p = sub.add_parser("reset-schwab", parents=[common, account_required],
                       help="Delete an account's data and re-import a Schwab CSV")
    p.add_argument("--file", required=True)
    p.add_argument("--force", action="store_true")
    p.set_defaults(func=cmd_reset_schwab)

    p = sub.add_parser("list-exec", parents=[common, account_required], help="List newest executions")
    p.add_argument("--take", type=int, default=50)
    p.set_defaults(func=cmd_list_exec)

    p = sub.add_parser("scan-options", parents=[common, account_required], help="Show parsed option symbols")
    p.add_argument("--take", type=int, default=50)
    p.set_defaults(func=cmd_scan_options)

    p = sub.add_parser("group-spreads", parents=[common, account_required], help="Match credit spreads")
    p.set_defaults(func=cmd_group_spreads)

    p = sub.add_parser("group-bwb", parents=[common, account_required], help="Match broken-wing butterflies")
    p.set_defaults(func=cmd_group_bwb)

    p = sub.add_parser("rebuild-groups", parents=[common, account_required],
                       help="Clear and re-match all groups of an account")
    p.set_defaults(func=cmd_rebuild_groups)

    p = sub.add_parser("list-groups", parents=[common, account_required], help="List trade groups with risk figures")
    p.add_argument("--take", type=int, default=25)
    p.add_argument("--strategy", default=None)
    p.add_argument("--open-only", action="store_true")
    p.set_defaults(func=cmd_list_groups)

    p = sub.add_parser("list-group-exec", parents=[common], help="List the executions of one group")
    p.add_argument("--group", type=int, required=True)
    p.set_defaults(func=cmd_list_group_exec)

    p = sub.add_parser("clear-groups", parents=[common], help="Delete trade groups (all, or one account)")
    p.add_argument("--account", default=None)
    p.set_defaults(func=cmd_clear_groups)

    p = sub.add_parser("stats-dte", parents=[common, account_required], help="Closed-trade stats by DTE bucket")
    p.set_defaults(func=cmd_stats_dte)

    p = sub.add_parser("stats-daily", parents=[common, account_required], help="Closed-trade stats by weekday")
    p.set_defaults(func=cmd_stats_daily)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_settings()
    parser = build_parser()
    args = parser.parse_args(argv)
    args.broker = args.broker or get_default_broker()

    configure_logging(args.verbose)

    db = DatabaseManager(db_url=resolve_db_url(args.db))
    logger.debug(f"DB: {db.db_url}")

    try:
        db.initialize_database()
        return args.func(args, db)
    except FeedError as e:
        logger.error(f"Import failed: {e}")
        return EXIT_FAILURE
    except StorageError as e:
        logger.error(f"Storage failure: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
