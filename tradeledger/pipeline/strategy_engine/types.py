"""Data types for the strategy engine."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, FrozenSet, List, Optional, Tuple, Union

from tradeledger.models.option_symbol import OptionRight, ParsedContract


@dataclass(frozen=True)
class ExecutionSnapshot:
    """In-memory copy of a stored Execution row, detached from the session."""
    id: int
    executed_at: datetime
    symbol: str
    action: str
    quantity: Optional[Decimal]
    price: Optional[Decimal]
    fees: Decimal
    net_amount: Decimal

    @property
    def trade_date(self) -> date:
        return self.executed_at.date()

    @property
    def abs_quantity(self) -> Decimal:
        return abs(self.quantity or Decimal("0"))


@dataclass(frozen=True)
class OptionExecution:
    """An execution whose symbol parsed as an option contract."""
    execution: ExecutionSnapshot
    contract: ParsedContract

    @property
    def id(self) -> int:
        return self.execution.id

    @property
    def action(self) -> str:
        return self.execution.action

    @property
    def strike(self) -> Decimal:
        return self.contract.strike

    @property
    def family(self) -> Tuple[str, date, OptionRight]:
        """Contract family of the fill: (underlying, expiration, right)."""
        return (self.contract.underlying, self.contract.expiration, self.contract.right)


@dataclass(frozen=True)
class SpreadKey:
    """Natural key used to skip credit spreads that already exist."""
    underlying: str
    expiration: date
    right: OptionRight
    short_strike: Decimal
    long_strike: Decimal


@dataclass(frozen=True)
class ButterflyScope:
    """(underlying, expiration, right, open date) shared by same-day butterflies."""
    underlying: str
    expiration: date
    right: OptionRight
    open_date: date


@dataclass(frozen=True)
class LegSpec:
    """One strike of a butterfly with its net signed quantity."""
    strike: Decimal
    quantity: Decimal       # + net long, - net short
    role: str               # "Wing" or "Body"


@dataclass(frozen=True)
class CreditSpreadCandidate:
    """A matched short/long pair, ready to be persisted as a CreditSpread group."""
    kind: ClassVar[str] = "CreditSpread"

    underlying: str
    expiration: date
    right: OptionRight
    short_strike: Decimal
    long_strike: Decimal
    open_date: date
    quantity: Decimal
    opening_ids: Tuple[int, ...]
    closing_ids: Tuple[int, ...] = ()

    @property
    def key(self) -> SpreadKey:
        return SpreadKey(self.underlying, self.expiration, self.right,
                         self.short_strike, self.long_strike)

    @property
    def execution_ids(self) -> List[int]:
        return _dedupe(self.opening_ids + self.closing_ids)


@dataclass(frozen=True)
class ButterflyCandidate:
    """A +w / -2w / +w strike triple, ready to be persisted as a BWB group."""
    kind: ClassVar[str] = "BWB"

    underlying: str
    expiration: date
    right: OptionRight
    open_date: date
    legs: Tuple[LegSpec, LegSpec, LegSpec]     # low wing, body, high wing
    opening_ids: Tuple[int, ...]
    closing_ids: Tuple[int, ...] = ()

    @property
    def scope(self) -> ButterflyScope:
        return ButterflyScope(self.underlying, self.expiration, self.right, self.open_date)

    @property
    def strikes(self) -> FrozenSet[Decimal]:
        return frozenset(leg.strike for leg in self.legs)

    @property
    def wing(self) -> Decimal:
        return self.legs[0].quantity

    @property
    def execution_ids(self) -> List[int]:
        return _dedupe(self.opening_ids + self.closing_ids)


TradeCandidate = Union[CreditSpreadCandidate, ButterflyCandidate]


@dataclass
class MatchResult:
    """Output of one matcher over one scope."""
    candidates: List[TradeCandidate] = field(default_factory=list)
    duplicates_skipped: int = 0

    @property
    def found(self) -> int:
        return len(self.candidates) + self.duplicates_skipped


def _dedupe(ids: Tuple[int, ...]) -> List[int]:
    seen = set()
    out = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out
