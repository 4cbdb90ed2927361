"""
Module: sales_kernel.db.types
Responsibility: Annotated type aliases and helpers for sale-grade column types.
    Centralizes price precision and rounding so that every model and service
    uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and reporting/.  MUST NOT import from those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  Prices and totals are Decimal;
      money_from_value() converts incoming numbers through their string
      form so that 1.1 stays Decimal("1.1").
    - round_money() is the only sanctioned rounding function.

Failure modes:
    - ValueError on non-numeric input to money_from_value().
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import JSON, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB

# Unit prices and totals in the base currency
Money = Annotated[Decimal, Numeric(18, 4)]

# Exchange multipliers (base -> secondary)
Rate = Annotated[Decimal, Numeric(24, 8)]

# Whole units held in or sold from a container
Quantity = Annotated[int, Integer]

# Identifiers and short labels
ShortCode = Annotated[str, String(64)]

# Display text (names, presentations)
LongText = Annotated[str, String(400)]

# Document bodies: JSONB on PostgreSQL, JSON elsewhere
JSONBody = JSON().with_variant(JSONB(), "postgresql")


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def money_from_value(value: object) -> Decimal:
    """
    Convert a number or numeric string to Decimal.

    Preconditions: value is a Decimal, int, float, or numeric string.
    Postconditions: Returns a finite Decimal (not rounded).

    Raises:
        ValueError: If value cannot be interpreted as a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary value: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a monetary value: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Only used for presentation (report totals); stored prices and subtotals
    keep full precision.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
