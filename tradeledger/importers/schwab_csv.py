"""
Schwab CSV importer — turns a Schwab transaction export into Execution rows.

Column names vary between Schwab export types, so each field is located by
trying a list of known header spellings (case-insensitive, trimmed).  Rows
come back as plain dicts ready for DatabaseManager.save_executions(); nothing
is written here.
"""

import csv
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from tradeledger.config import DEFAULT_BROKER
from tradeledger.errors import FeedError

logger = logging.getLogger(__name__)

HEADER_CANDIDATES: Dict[str, Tuple[str, ...]] = {
    "date": ("Date", "Trade Date", "Transaction Date"),
    "time": ("Time", "Trade Time", "Transaction Time"),
    "action": ("Action", "Type", "Transaction Type"),
    "symbol": ("Symbol", "Ticker"),
    "description": ("Description", "Security Description", "Name"),
    "quantity": ("Quantity", "Qty"),
    "price": ("Price", "Trade Price"),
    "fees": (
        "Fees & Comm",  # Schwab's own spelling
        "Fees & Commissions",
        "Fees and Comm",
        "Fees and Commissions",
        "Commissions & Fees",
        "Commission & Fees",
        "Fees",
        "Commission",
    ),
    "amount": ("Amount", "Net Amount", "Value", "Proceeds"),
}

_DATETIME_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
)
_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%Y-%m-%d")

_AS_OF = " as of "


@dataclass
class ImportSummary:
    rows_read: int = 0
    executions_created: int = 0
    warnings: List[str] = field(default_factory=list)


def find_header_index(headers: Sequence[str], *candidates: str) -> int:
    """Index of the first header matching any candidate, or -1."""
    wanted = {c.lower() for c in candidates}
    for i, header in enumerate(headers):
        if (header or "").strip().lower() in wanted:
            return i
    return -1


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """Parse a money/quantity cell: '$1,234.50' -> 1234.50, '(12.00)' -> -12.00.

    Blank or unparsable cells give None.
    """
    if value is None or not value.strip():
        return None

    s = value.strip().replace("$", "").replace(",", "")
    negative = s.startswith("(") and s.endswith(")")
    if negative:
        s = s[1:-1].strip()

    try:
        number = Decimal(s)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return -number if negative else number


def parse_executed_at(
    date_str: Optional[str],
    time_str: Optional[str],
    row_num: int,
    warnings: List[str],
) -> datetime:
    """Best-effort date/time parse.

    "11/17/2025 as of 11/14/2025" keeps the as-of date.  Rows with no usable
    date get datetime.min and a warning.
    """
    date_str = (date_str or "").strip() or None
    time_str = (time_str or "").strip() or None

    if date_str is None and time_str is None:
        return datetime.min

    if date_str:
        idx = date_str.lower().find(_AS_OF)
        if idx >= 0:
            after = date_str[idx + len(_AS_OF):].strip()
            before = date_str[:idx].strip()
            date_str = after or before

    if date_str and time_str:
        combined = f"{date_str} {time_str}"
        for fmt in _DATETIME_FORMATS:
            try:
                return datetime.strptime(combined, fmt)
            except ValueError:
                continue

    if date_str:
        for fmt in _DATETIME_FORMATS + _DATE_FORMATS:
            try:
                return datetime.strptime(date_str, fmt)
            except ValueError:
                continue

    warnings.append(
        f"Row {row_num}: Could not parse date/time (date='{date_str}', time='{time_str}')."
    )
    return datetime.min


def _fmt(value: Optional[Decimal]) -> str:
    """Scale-free decimal text, so 1.5 and 1.50 hash alike."""
    return "" if value is None else format(value.normalize(), "f")


def compute_fingerprint(
    broker: str,
    account: str,
    executed_at: datetime,
    action: str,
    symbol: str,
    quantity: Optional[Decimal],
    price: Optional[Decimal],
    net_amount: Decimal,
    fees: Decimal,
) -> str:
    """SHA-256 hex digest identifying one fill within a (broker, account) scope."""
    key = "|".join([
        broker,
        account,
        executed_at.isoformat(),
        action,
        symbol,
        _fmt(quantity),
        _fmt(price),
        _fmt(net_amount),
        _fmt(fees),
    ])
    return hashlib.sha256(key.encode("utf-8")).hexdigest().upper()


class SchwabCsvImporter:
    """Reads Schwab transaction exports."""

    def __init__(self, broker: str = DEFAULT_BROKER):
        self.broker = broker

    def import_executions(self, account: str, csv_path) -> Tuple[List[Dict], ImportSummary]:
        """Parse ``csv_path`` into execution dicts for ``account``.

        Raises FeedError if the file is missing or has no header row.
        """
        path = Path(csv_path)
        if not path.is_file():
            raise FeedError(f"CSV not found: {path}")

        summary = ImportSummary()
        results: List[Dict] = []

        with path.open(newline="", encoding="utf-8-sig") as fh:
            sample = fh.read(4096)
            fh.seek(0)
            try:
                delimiter = csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
            except csv.Error:
                delimiter = ","

            reader = csv.reader(fh, delimiter=delimiter)
            headers = next(reader, None)
            if not headers or not any(h.strip() for h in headers):
                raise FeedError(f"No CSV headers found in {path.name}")
            headers = [h.strip() for h in headers]

            idx = {name: find_header_index(headers, *cands)
                   for name, cands in HEADER_CANDIDATES.items()}

            if idx["fees"] < 0:
                summary.warnings.append(
                    "Could not find a Fees column (expected something like 'Fees & Comm'). "
                    "Fees will be 0."
                )
            if idx["date"] < 0 and idx["time"] < 0:
                summary.warnings.append(
                    "Could not find a Date/Time column. ExecutedAt defaults to datetime.min."
                )

            row_num = 1  # header row
            for cells in reader:
                row_num += 1
                if not any(c.strip() for c in cells):
                    continue
                cells = [c.strip() for c in cells]

                def cell(name: str) -> Optional[str]:
                    i = idx[name]
                    return cells[i] if 0 <= i < len(cells) else None

                executed_at = parse_executed_at(cell("date"), cell("time"), row_num, summary.warnings)
                action = cell("action") or ""
                symbol = cell("symbol") or ""
                description = cell("description") or ""
                quantity = parse_decimal(cell("quantity"))
                price = parse_decimal(cell("price"))
                fees = parse_decimal(cell("fees")) or Decimal("0")
                net_amount = parse_decimal(cell("amount")) or Decimal("0")

                raw = {h: (cells[i] if i < len(cells) else None) for i, h in enumerate(headers)}

                results.append({
                    "broker": self.broker,
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
                        self.broker, account, executed_at, action, symbol,
                        quantity, price, net_amount, fees,
                    ),
                    "source_file": path.name,
                    "source_row_number": row_num,
                    "raw_row_json": json.dumps(raw),
                })

        summary.rows_read = row_num - 1
        summary.executions_created = len(results)
        for warning in summary.warnings:
            logger.warning("%s: %s", path.name, warning)
        logger.info("Parsed %d executions from %s (%d rows)",
                    summary.executions_created, path.name, summary.rows_read)
        return results, summary
