"""
Values -- Amount and calendar-day primitives.

Responsibility:
    Provides the two coercions every caisse computation relies on:
    monetary amounts as ``Decimal`` (never float) and calendar dates
    normalized to day granularity (time-of-day discarded).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are ``Decimal``; floats are rejected because binary
      rounding drifts accumulate across many small daily contributions.
    - Day normalization never consults the clock.

Failure modes:
    - TypeError when a float or unsupported type is passed as an amount.
    - ValueError when a string amount is not a valid decimal.
    - TypeError when a non-date value is normalized to a day.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Currency of the caisse (franc CFA, no minor unit)
DEFAULT_CURRENCY = "XAF"


def to_amount(value: Decimal | int | str) -> Decimal:
    """
    Coerce a monetary value to ``Decimal``.

    Preconditions:
        - ``value`` is a Decimal, an int, or a decimal string.
    Raises:
        TypeError: If ``value`` is a float (or bool, or other type).
        ValueError: If a string cannot be parsed.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Amounts must be Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, (int, str)):
        try:
            return Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    raise TypeError(f"Amounts must be Decimal, int or str, got {type(value).__name__}")


def to_optional_amount(value: Decimal | int | str | None) -> Decimal | None:
    """``to_amount`` that lets ``None`` through (open contracts)."""
    if value is None:
        return None
    return to_amount(value)


def to_day(value: date | datetime) -> date:
    """
    Normalize a date or datetime to its calendar day.

    Aware datetimes keep their own calendar day (no timezone conversion).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def days_between(later: date | datetime, earlier: date | datetime) -> int:
    """Whole calendar days from ``earlier`` to ``later`` (negative if reversed)."""
    return (to_day(later) - to_day(earlier)).days
