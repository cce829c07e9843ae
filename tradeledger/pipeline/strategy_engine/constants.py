"""Strategy registry and shared numeric constants."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class StrategyDef:
    """Registry entry defining a strategy's metadata."""
    name: str
    leg_count: int


CREDIT_SPREAD = "CreditSpread"
BWB = "BWB"

STRATEGIES: dict[str, StrategyDef] = {
    CREDIT_SPREAD: StrategyDef(CREDIT_SPREAD, 2),
    BWB:           StrategyDef(BWB,           3),
}

ROLE_WING = "Wing"
ROLE_BODY = "Body"

# Equity options: one contract = 100 shares
CONTRACT_MULTIPLIER = Decimal("100")

# A losing close within this many dollars of max risk counts as max loss
MAX_LOSS_TOLERANCE = Decimal("1.00")
