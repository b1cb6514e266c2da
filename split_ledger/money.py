"""
Money helpers shared by validation, allocation and aggregation.

All amounts are Decimal. Rounding to cents happens at the boundary
(stored shares, summary figures), never in the middle of a sum.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def qround(d: Decimal) -> Decimal:
    return d.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a client-supplied amount.

    Returns None for anything that isn't a finite number
    (missing, blank, booleans, NaN, garbage strings).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = CENTS) -> bool:
    return abs(a - b) <= tolerance


def equal_share(total: Decimal, participants: int) -> Decimal:
    """
    Per-head share when the payer splits evenly with `participants` others.

    Rounded down to the cent so the shares never add up to more than
    the total. The payer absorbs the leftover cents.
    """
    return (total / (participants + 1)).quantize(CENTS, rounding=ROUND_DOWN)
