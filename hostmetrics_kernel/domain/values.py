"""
Numeric coercion for raw booking values.

Booking sources disagree on types: webhook JSON carries numbers, CSV rows
carry strings, PMS APIs sometimes send ``null``.  Everything that flows into
arithmetic passes through ``to_decimal`` first.  Pure, zero I/O.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any) -> Decimal | None:
    """
    Coerce a raw scalar to a finite Decimal, or None.

    Accepts int, float, Decimal, and numeric strings (surrounding whitespace
    ignored).  Booleans, None, containers, NaN and infinities yield None.
    Never raises.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # str() keeps the shortest repr: 0.1 -> Decimal("0.1")
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            return None
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            result = Decimal(s)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def round_money(value: Decimal, places: int = 2) -> Decimal:
    """Round to ``places`` decimal places, half away from zero.

    Raises:
        decimal.InvalidOperation: If the result needs more digits than the
            current decimal context allows.
    """
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
