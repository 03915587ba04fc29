"""Data models for the debt calculator.

This module defines dataclasses representing the entities tracked by the
calculator: loans, the rows of an amortization schedule, the summary derived
from a pair of schedules and the UI/store state persisted between sessions.
Using dataclasses makes it easy to construct, inspect and serialize these
structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace as dc_replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .utils import json_number, parse_iso_date, to_decimal, to_whole_number

SORT_KEYS = ("payoff", "outstanding")


def sanitize_sort_key(value: Any) -> str:
    """Coerce ``value`` to a recognized sort key, defaulting to ``"payoff"``."""
    return value if value in SORT_KEYS else "payoff"


@dataclass
class Loan:
    """A borrower's fixed-rate installment obligation.

    Attributes
    ----------
    id: str
        Opaque unique identifier. Never changes once the loan is created.
    description: str
        Free-text label shown to the user.
    principal: Decimal
        Original amount borrowed.
    start_date: date
        The date the loan began accruing interest.
    annual_rate: Decimal
        Nominal annual interest rate in percent (e.g. ``Decimal("8.2")``).
    tenure_months: int
        Original contractual term in whole months.
    extra_monthly: Decimal
        Additional principal paid every month on top of the installment.
    """

    id: str
    description: str
    principal: Decimal
    start_date: date
    annual_rate: Decimal
    tenure_months: int
    extra_monthly: Decimal = Decimal("0")

    def replace(self, **fields: Any) -> "Loan":
        """Return a copy of the loan with ``fields`` replaced."""
        if "id" in fields and fields["id"] != self.id:
            raise ValueError("Loan id is immutable")
        return dc_replace(self, **fields)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "principal": json_number(self.principal),
            "startDate": self.start_date.isoformat(),
            "annualRate": json_number(self.annual_rate),
            "tenureMonths": self.tenure_months,
            "extraMonthly": json_number(self.extra_monthly),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Loan":
        """Build a loan from its persisted (camelCase) representation.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` when ``data`` is
        not a well-formed loan record.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Loan record must be an object; got {type(data).__name__}")
        return cls(
            id=str(data["id"]),
            description=str(data.get("description", "")),
            principal=to_decimal(data["principal"]),
            start_date=parse_iso_date(data["startDate"]),
            annual_rate=to_decimal(data["annualRate"]),
            tenure_months=to_whole_number(data["tenureMonths"]),
            extra_monthly=to_decimal(data.get("extraMonthly", 0)),
        )


@dataclass
class ScheduleRow:
    """One simulated month of repayment.

    ``index`` is the 1-based month number within the simulation and ``date``
    is the start date shifted by ``index`` months. ``principal`` is the
    contractual part of ``payment`` (``payment - interest``) while
    ``extra_applied`` is the extra amount actually used this month, which may
    be less than the configured extra on the final month.
    """

    index: int
    date: date
    payment: Decimal
    interest: Decimal
    principal: Decimal
    extra_applied: Decimal
    balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "date": self.date.isoformat(),
            "payment": float(self.payment),
            "interest": float(self.interest),
            "principal": float(self.principal),
            "extraApplied": float(self.extra_applied),
            "balance": float(self.balance),
        }


@dataclass
class LoanSummary:
    """Aggregate metrics derived from the baseline and extra-payment schedules."""

    emi: Decimal
    payoff_base: date
    payoff_extra: date
    months_saved: int
    interest_base: Decimal
    interest_extra: Decimal
    interest_saved: Decimal
    remaining: Decimal
    schedule: List[ScheduleRow]
    schedule_base: List[ScheduleRow]
    # True when the extra-payment schedule ran to the iteration ceiling
    # without clearing the balance.
    non_amortizing: bool = False

    @property
    def is_closed(self) -> bool:
        return self.remaining <= 1

    def to_dict(self, include_schedules: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "emi": float(self.emi),
            "payoffBase": self.payoff_base.isoformat(),
            "payoffExtra": self.payoff_extra.isoformat(),
            "monthsSaved": self.months_saved,
            "interestBase": float(self.interest_base),
            "interestExtra": float(self.interest_extra),
            "interestSaved": float(self.interest_saved),
            "remaining": float(self.remaining),
            "nonAmortizing": self.non_amortizing,
        }
        if include_schedules:
            data["schedule"] = [row.to_dict() for row in self.schedule]
            data["scheduleBase"] = [row.to_dict() for row in self.schedule_base]
        return data


@dataclass
class UIState:
    show_closed: bool = True
    sort_by: str = "payoff"
    selected_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "showClosed": self.show_closed,
            "sortBy": self.sort_by,
            "selectedId": self.selected_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UIState":
        """Sanitize a persisted UI object field by field."""
        return cls(
            show_closed=bool(data.get("showClosed")),
            sort_by=sanitize_sort_key(data.get("sortBy")),
            selected_id=data.get("selectedId"),
        )


@dataclass
class StoreState:
    """The single source of truth held by :class:`debt_calc.store.LoanStore`."""

    loans: List[Loan] = field(default_factory=list)
    ui: UIState = field(default_factory=UIState)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loans": [loan.to_dict() for loan in self.loans],
            "ui": self.ui.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "StoreState":
        """Build a state from the persisted blob.

        Raises ``ValueError`` when the top-level shape is wrong, and lets
        ``Loan.from_dict`` errors propagate for malformed loan records.
        """
        if not isinstance(data, dict):
            raise ValueError("State must be an object")
        loans = data.get("loans")
        ui = data.get("ui")
        if not isinstance(loans, list):
            raise ValueError("State 'loans' must be a list")
        if not isinstance(ui, dict):
            raise ValueError("State 'ui' must be an object")
        return cls(loans=[Loan.from_dict(item) for item in loans], ui=UIState.from_dict(ui))
