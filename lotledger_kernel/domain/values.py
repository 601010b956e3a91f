"""
Values -- Decimal and calendar helpers shared by every engine.

Responsibility:
    Normalises raw numeric and date inputs coming from the entity store
    into the types the engines compute with: ``Decimal`` for quantities and
    money, naive ``datetime`` for document timestamps.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: floats are converted through ``str()`` so
      that ``0.1`` stays ``Decimal("0.1")`` and never its binary expansion.
    - Tolerances are named constants, never inline literals.

Failure modes:
    - ValueError when a value cannot be interpreted as a number or a date.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")

# Lots at or below this quantity are treated as empty and pruned.
QUANTITY_TOLERANCE = Decimal("0.001")

# Amounts at or below this are treated as settled.
MONEY_TOLERANCE = Decimal("0.01")

ONE_DAY = timedelta(days=1)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric input to Decimal.

    Preconditions:
        - ``value`` is a Decimal, int, float or numeric string.

    Postconditions:
        - Returns a finite Decimal.

    Raises:
        ValueError: If the value is not numeric or not finite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid numeric value: {value!r}") from e
    else:
        raise ValueError(f"Invalid numeric value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Numeric value must be finite: {value!r}")
    return result


def to_datetime(value: Any) -> datetime:
    """
    Convert a document date to a naive datetime.

    A bare ``date`` (or a date-only ISO string) becomes midnight of that day.
    Timezone-aware datetimes are converted to UTC and made naive.
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Invalid date value: {value!r}") from e
    else:
        raise ValueError(f"Invalid date value: {value!r}")

    if result.tzinfo is not None:
        offset = result.utcoffset() or timedelta(0)
        result = (result - offset).replace(tzinfo=None)
    return result


def start_of_day(value: Any) -> datetime:
    """Midnight of the value's calendar day."""
    return datetime.combine(to_datetime(value).date(), time.min)


def end_of_day(value: Any) -> datetime:
    """Last representable instant of the value's calendar day."""
    return datetime.combine(to_datetime(value).date(), time.max)


def is_negligible_quantity(value: Decimal) -> bool:
    """True if a lot quantity is small enough to be pruned."""
    return value <= QUANTITY_TOLERANCE


def is_settled(value: Decimal, tolerance: Decimal = MONEY_TOLERANCE) -> bool:
    """True if an amount is within the settlement tolerance of zero."""
    return abs(value) <= tolerance
