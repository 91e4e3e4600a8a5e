"""Money helpers shared by the calculators."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from mypayroll.errors import ValidationError

ZERO = Decimal("0")
CENTS = Decimal("0.01")
RINGGIT = Decimal("1")


def round2(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce a wire value to Decimal; None and empty strings become 0."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"{field} must be a number", field) from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field)
    return result


def to_optional_decimal(value: Any, field: str) -> Decimal | None:
    """Like to_decimal, but None and empty strings stay None (override semantics)."""
    if value is None or value == "":
        return None
    return to_decimal(value, field)


def require_non_negative(value: Decimal, field: str) -> Decimal:
    """Raise ValidationError for negative amounts."""
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", field)
    return value
