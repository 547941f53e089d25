"""
Decimal helpers shared by models, domain and services.

Amounts are Decimal end to end.  ``to_money`` is the gate every caller-supplied
amount passes through; ``round_money`` is the one rounding rule (half-up).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric

# Exchange rates keep more precision than the Numeric(38, 9) money default
Rate = Annotated[Decimal, Numeric(38, 18)]

DEFAULT_ROUNDING = ROUND_HALF_UP


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce ``value`` to Decimal.

    Raises:
        TypeError: for floats and bools.
        ValueError: for strings that are not numbers.
    """
    if isinstance(value, (bool, float)):
        raise TypeError(f"Monetary amounts must not be {type(value).__name__}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Quantize to ``decimal_places``; 333.335 -> 333.34."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=rounding)
