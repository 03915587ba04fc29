"""Clamping of loan field edits before they reach the store.

User edits arrive as loosely typed values (form fields, CLI options, JSON
bodies). :func:`sanitize_patch` converts them to the types used by
:class:`~debt_calc.data_models.Loan` and clamps them into the valid range,
so that the store and engine only ever see already-valid values.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping

from .utils import parse_iso_date, to_decimal

MAX_ANNUAL_RATE = Decimal("30")
MIN_TENURE_YEARS = Decimal("0.1")

# Wire (camelCase) names accepted alongside attribute names.
FIELD_ALIASES = {
    "startDate": "start_date",
    "annualRate": "annual_rate",
    "tenureMonths": "tenure_months",
    "tenureYears": "tenure_years",
    "extraMonthly": "extra_monthly",
}

EDITABLE_FIELDS = {
    "description",
    "principal",
    "start_date",
    "annual_rate",
    "tenure_months",
    "tenure_years",
    "extra_monthly",
}


def clamp(value, lo, hi):
    """Clamp ``value`` into the closed interval ``[lo, hi]``."""
    return min(max(value, lo), hi)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _number(name: str, value: Any) -> Decimal:
    try:
        return to_decimal(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value for {name}: {value!r}") from exc


def sanitize_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a typed, clamped copy of a partial loan edit.

    Keys may use attribute names (``annual_rate``) or wire names
    (``annualRate``). ``tenure_years`` is accepted as an alternative input and
    converted to whole months.

    Raises
    ------
    ValueError
        If a key is unknown (or is ``id``) or a value cannot be parsed.
    """
    result: Dict[str, Any] = {}
    for raw_key, value in patch.items():
        key = FIELD_ALIASES.get(raw_key, raw_key)
        if key not in EDITABLE_FIELDS:
            raise ValueError(f"Field cannot be edited: {raw_key}")

        if key == "description":
            result["description"] = "" if value is None else str(value)
        elif key == "start_date":
            result["start_date"] = parse_iso_date(value)
        elif key == "principal":
            result["principal"] = max(_number(key, value), Decimal("0"))
        elif key == "annual_rate":
            result["annual_rate"] = clamp(_number(key, value), Decimal("0"), MAX_ANNUAL_RATE)
        elif key == "extra_monthly":
            result["extra_monthly"] = max(_number(key, value), Decimal("0"))
        elif key == "tenure_months":
            result["tenure_months"] = max(1, _round_half_up(_number(key, value)))
        elif key == "tenure_years":
            years = max(MIN_TENURE_YEARS, _number(key, value))
            result["tenure_months"] = max(1, _round_half_up(years * 12))
    return result
