"""Open/close and buy/sell semantics derived from free-text broker actions.

Schwab writes actions such as "Sell to Open", "Buy to Close" or "Expired".
The four predicates are independent; an action that matches none of them is
left out of every matching pass.
"""

from typing import Optional


def _norm(action: Optional[str]) -> str:
    return (action or "").lower()


def is_open(action: Optional[str]) -> bool:
    return "to open" in _norm(action)


def is_close(action: Optional[str]) -> bool:
    text = _norm(action)
    return "to close" in text or "expired" in text


def is_sell(action: Optional[str]) -> bool:
    return _norm(action).lstrip().startswith("sell")


def is_buy(action: Optional[str]) -> bool:
    return _norm(action).lstrip().startswith("buy")


def is_sell_to_open(action: Optional[str]) -> bool:
    return is_open(action) and is_sell(action)


def is_buy_to_close(action: Optional[str]) -> bool:
    return is_close(action) and is_buy(action)
