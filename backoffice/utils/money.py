"""Decimal helpers for money and percentages."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')


def round_money(value) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_decimal(value, field: str, allow_negative: bool = False) -> Decimal:
    """
    Parse a user supplied number (str, int, float or Decimal) to Decimal.

    Floats go through ``str`` so 0.1 stays 0.1.

    Raises:
        ValueError: if the value is empty, not a number, or negative when
            negatives are not allowed.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f'{field} is required')
    if isinstance(value, bool):
        raise ValueError(f'{field} must be a number')

    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be a number')

    if not number.is_finite():
        raise ValueError(f'{field} must be a number')
    if number < 0 and not allow_negative:
        raise ValueError(f'{field} cannot be negative')

    return number
