"""Utility functions for the debt calculator.

This module provides helpers for parsing user input into Python data types and
for handling dates, including adding months to ``datetime.date`` instances and
parsing ISO ``YYYY-MM-DD`` strings. It uses Python's ``datetime`` module to
calculate month offsets.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, getcontext
import calendar
from typing import Any

getcontext().prec = 28  # increase decimal precision to avoid rounding errors


def parse_iso_date(value: Any) -> date:
    """Parse a ``YYYY-MM-DD`` string into a ``date`` object.

    ``date`` instances are returned unchanged.

    Raises
    ------
    ValueError
        If the value is not a valid calendar date.
    """
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def to_decimal(value: Any) -> Decimal:
    """Convert a number or numeric string into a ``Decimal``.

    Floats go through ``repr`` so that ``8.2`` becomes ``Decimal("8.2")``
    rather than its binary expansion. Booleans are rejected.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean is not a numeric value")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return decimal_from_str(repr(value))
    if isinstance(value, str):
        return decimal_from_str(value)
    raise TypeError(f"Invalid numeric value: {value!r}")


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and surrounding whitespace. It raises
    ``ValueError`` if conversion fails or the value is not finite.
    """
    try:
        cleaned = value.replace(",", "").strip()
        result = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m``/``l``
    suffixes (e.g., "500k" meaning 500_000, "25l" meaning 25 lakh).
    """
    cleaned = value.strip().lower().replace(",", "")
    factor = Decimal("1")
    if cleaned.endswith("k"):
        factor = Decimal("1000")
        cleaned = cleaned[:-1]
    elif cleaned.endswith("l"):
        factor = Decimal("100000")
        cleaned = cleaned[:-1]
    elif cleaned.endswith("m"):
        factor = Decimal("1000000")
        cleaned = cleaned[:-1]
    return decimal_from_str(cleaned) * factor


def to_whole_number(value: Any) -> int:
    """Convert ``value`` into an ``int``, rejecting fractions and infinities."""
    number = to_decimal(value)
    if number != number.to_integral_value():
        raise ValueError(f"Not a whole number: {value!r}")
    return int(number)


def json_number(value: Decimal) -> Any:
    """Return ``value`` in a JSON-friendly form that reads back exactly.

    Integral values become ``int`` and values a ``float`` can carry become
    ``float``. Anything with more significant digits than a float holds is
    written as its decimal string, which :func:`to_decimal` reads back.
    """
    if value == value.to_integral_value():
        return int(value)
    as_float = float(value)
    if decimal_from_str(repr(as_float)) == value:
        return as_float
    return str(value)
