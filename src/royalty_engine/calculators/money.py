"""Money and percentage primitives.

Rounding:
- Internal compute at >=4 decimals
- Currency amounts rounded to 2 decimals, half-up, only at presentation
  and persistence boundaries
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Union

from royalty_engine.exceptions import InvalidInputError

Numeric = Union[Decimal, int, float, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")

OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places for persistence
EPSILON = Decimal("0.01")


def to_decimal(value: Numeric | None, field: str = "amount") -> Decimal:
    """Convert a numeric value to Decimal.

    Floats are converted through ``str`` so ``0.1`` stays ``Decimal("0.1")``.
    ``None`` is treated as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidInputError(field, "boolean is not a number", value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidInputError(field, "not a number", value) from None
    if not result.is_finite():
        raise InvalidInputError(field, "must be finite", value)
    return result


def round_money(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents), half-up."""
    return amount.quantize(OUTPUT_PRECISION, rounding=ROUND_HALF_UP)


def floor_money(amount: Decimal) -> Decimal:
    """Truncate amount to whole cents."""
    return amount.quantize(OUTPUT_PRECISION, rounding=ROUND_DOWN)


def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """Return ``percentage`` percent of ``amount``."""
    return amount * percentage / HUNDRED


def ratio(part: Decimal, whole: Decimal) -> Decimal:
    """Return part / whole, or zero when whole is zero."""
    if whole == ZERO:
        return ZERO
    return part / whole


def clamp_non_negative(amount: Decimal) -> Decimal:
    return max(ZERO, amount)


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def within_tolerance(a: Decimal, b: Decimal, epsilon: Decimal = EPSILON) -> bool:
    """Check whether two amounts agree within epsilon."""
    return abs(a - b) <= epsilon


def validate_percentage(value: Decimal, field: str = "percentage") -> Decimal:
    """Validate a 0-100 percentage."""
    if value < ZERO or value > HUNDRED:
        raise InvalidInputError(field, "must be between 0 and 100", value)
    return value


def distribute_evenly(amount: Decimal, parts: int) -> list[Decimal]:
    """Split ``amount`` into ``parts`` cent amounts that sum exactly to it.

    Every part gets the floored even share; leftover cents go one each to
    the leading parts, so no part is negative and none differs from
    another by more than one cent.
    """
    if parts < 1:
        return []
    total_cents = int(round_money(amount) * 100)
    base, extra = divmod(total_cents, parts)
    return [
        (Decimal(base + (1 if index < extra else 0)) / HUNDRED).quantize(OUTPUT_PRECISION)
        for index in range(parts)
    ]
