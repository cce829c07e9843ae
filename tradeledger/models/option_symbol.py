"""
Option symbol parsing for broker execution rows.

Schwab exports option fills with a symbol of the form
``<UNDERLYING> <MM/DD/YYYY> <STRIKE> <C|P>``, e.g. ``SPXW 02/10/2026 6880.00 P``.
Anything else (equities, cash lines, journal entries) is simply not an
option: the parser returns None rather than raising.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional


class OptionRight(str, Enum):
    CALL = "Call"
    PUT = "Put"

    @classmethod
    def from_code(cls, code: str) -> "OptionRight":
        return cls.PUT if code.upper() == "P" else cls.CALL


@dataclass(frozen=True)
class ParsedContract:
    """Structured contract fields recovered from an option symbol."""
    underlying: str         # Upper-cased, e.g. "SPXW"
    expiration: date
    strike: Decimal         # Non-negative
    right: OptionRight


_SYMBOL_RE = re.compile(
    r"^\s*(?P<und>[A-Z0-9.]+)\s+(?P<exp>\d{2}/\d{2}/\d{4})\s+(?P<strike>\d+(?:\.\d+)?)\s+(?P<right>[CP])\s*$",
    re.IGNORECASE,
)


def parse_option_symbol(symbol: Optional[str]) -> Optional[ParsedContract]:
    """Parse ``symbol`` into a ParsedContract, or return None if it is not an option."""
    if not symbol or not symbol.strip():
        return None

    m = _SYMBOL_RE.match(symbol.strip())
    if not m:
        return None

    try:
        expiration = datetime.strptime(m.group("exp"), "%m/%d/%Y").date()
    except ValueError:
        return None

    try:
        strike = Decimal(m.group("strike"))
    except InvalidOperation:
        return None

    return ParsedContract(
        underlying=m.group("und").upper(),
        expiration=expiration,
        strike=strike,
        right=OptionRight.from_code(m.group("right")),
    )


def is_option_symbol(symbol: Optional[str]) -> bool:
    return parse_option_symbol(symbol) is not None


def format_contract(contract: ParsedContract) -> str:
    """Human-readable contract label used by the CLI listings."""
    return f"{contract.underlying} {contract.expiration:%Y-%m-%d} {contract.strike.normalize():f} {contract.right.value}"
