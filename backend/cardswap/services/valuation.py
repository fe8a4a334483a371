"""Valuation engine: pure functions scoring one side of a trade.

All functions are deterministic and side-effect free so they can be unit
tested without a database (see tests/test_valuation.py). Money is handled as
``Decimal`` rounded to cents so that the balance rule is decided on the same
amounts the users see.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Protocol, Union

from cardswap.config import settings

CENT = Decimal("0.01")

Amount = Union[Decimal, float, int, str]


class Valued(Protocol):
    estimated_value: Optional[Decimal]
    desired_sale_price: Optional[Decimal]


def to_money(value: Amount) -> Decimal:
    """Round an amount to cents. Floats go through ``str`` so 1.7 stays 1.70."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def item_valuation(item: Valued, fallback: Optional[Amount] = None) -> Decimal:
    """Value of one item: estimated value, else desired sale price, else fallback."""
    if fallback is None:
        fallback = settings.TRADE_VALUATION_FALLBACK
    if item.estimated_value is not None:
        return to_money(item.estimated_value)
    if item.desired_sale_price is not None:
        return to_money(item.desired_sale_price)
    return to_money(fallback)


def valuation(items: Iterable[Valued], cash: Optional[Amount] = None) -> Decimal:
    """Sum of item valuations plus the cash offered on that side."""
    total = sum((item_valuation(item) for item in items), Decimal("0"))
    return total + to_money(cash or 0)


def difference_percent(a: Amount, b: Amount) -> Decimal:
    """|a - b| / max(a, b, 1), as a fraction.

    The floor of 1 keeps two zero-valued sides from dividing by zero.
    """
    a, b = to_money(a), to_money(b)
    return abs(a - b) / max(a, b, Decimal(1))


def within_balance(a: Amount, b: Amount, threshold: Optional[Amount] = None) -> bool:
    """True when the two sides are close enough in value to be traded."""
    if threshold is None:
        threshold = settings.TRADE_MAX_VALUE_DIFFERENCE
    return difference_percent(a, b) <= Decimal(str(threshold))
