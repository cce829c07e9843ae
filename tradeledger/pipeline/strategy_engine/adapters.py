"""Adapters that bridge stored Execution rows to the strategy engine's types."""

from decimal import Decimal
from typing import Iterable, List, Sequence

from tradeledger.models.execution_classifier import is_close
from tradeledger.models.option_symbol import parse_option_symbol
from .types import ExecutionSnapshot, OptionExecution


def execution_to_snapshot(row) -> ExecutionSnapshot:
    """Copy an ORM Execution (or any object with the same attributes) into a snapshot."""
    return ExecutionSnapshot(
        id=row.id,
        executed_at=row.executed_at,
        symbol=row.symbol or "",
        action=row.action or "",
        quantity=row.quantity,
        price=row.price,
        fees=row.fees if row.fees is not None else Decimal("0"),
        net_amount=row.net_amount if row.net_amount is not None else Decimal("0"),
    )


def parse_option_executions(executions: Iterable[ExecutionSnapshot]) -> List[OptionExecution]:
    """Keep only executions whose symbol parses as an option, in input order.

    Non-option symbols (equities, cash lines) are dropped silently.
    """
    result = []
    for ex in executions:
        contract = parse_option_symbol(ex.symbol)
        if contract is None:
            continue
        result.append(OptionExecution(execution=ex, contract=contract))
    return result


def closing_executions_for(
    option_execs: Sequence[OptionExecution],
    family: tuple,
    strikes: Iterable[Decimal],
) -> List[OptionExecution]:
    """All closing fills of the contract family at any of ``strikes``.

    The scan runs over every parsed option execution of the scope, not only
    those seen while matching, so closes on later days are picked up.
    """
    wanted = set(strikes)
    return [
        ox for ox in option_execs
        if is_close(ox.action) and ox.family == family and ox.strike in wanted
    ]
