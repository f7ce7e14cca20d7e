"""
Module: points_kernel.db.types
Responsibility: Annotated column aliases and the rounding rules for points.
    Centralizes how currency amounts become points so that every handler,
    test and report rounds identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Points are whole integers.  Fractions only exist transiently while
      converting spend and rates; round_points() is the ONLY sanctioned
      conversion.
    - Spend amounts are Decimal with 2 places.  No floats.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Signed point quantity
Points = Annotated[int, BigInteger]

# Currency spend amount
Spend = Annotated[Decimal, Numeric(12, 2)]

# Promotion rate bonus (fraction of spend)
Rate = Annotated[Decimal, Numeric(9, 6)]

# Short identifier strings (utorid, role, type tags)
ShortCode = Annotated[str, String(50)]

# Free-text remarks
LongText = Annotated[str, String(1000)]


SPEND_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: object) -> Decimal:
    """
    Convert an int, str or Decimal to Decimal.

    Floats are converted through their string form so 40.1 stays 40.1.

    Raises:
        ValueError: If the value is not numeric (bool included).
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Not a numeric value: {value!r}") from exc
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        raise ValueError(f"Not a numeric value: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite value: {value!r}")
    return result


def round_points(value: Decimal) -> int:
    """
    Round a fractional point amount to whole points, half away from zero.

    This is the ONLY sanctioned rounding function for points.

    Example:
        round_points(Decimal("160.5")) -> 161
    """
    return int(value.quantize(Decimal("1"), rounding=DEFAULT_ROUNDING))


def round_spend(value: Decimal) -> Decimal:
    """Quantize a spend amount to 2 decimal places (half up)."""
    return value.quantize(Decimal("0.01"), rounding=DEFAULT_ROUNDING)
