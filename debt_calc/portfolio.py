"""Portfolio-level views over a collection of loans.

These helpers turn the store's loans and UI state into what a front-end
renders: the visible, sorted list of loans with their summaries and the
headline figures across the whole portfolio.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .data_models import Loan, LoanSummary, UIState
from .engine import emi, summarize_loan

LoanRow = Tuple[Loan, LoanSummary]


@dataclass
class PortfolioKpis:
    total_outstanding: Decimal
    total_emi: Decimal
    total_interest_saved: Decimal
    latest_payoff: Optional[date]
    closed_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalOutstanding": float(self.total_outstanding),
            "totalEmi": float(self.total_emi),
            "totalInterestSaved": float(self.total_interest_saved),
            "latestPayoff": self.latest_payoff.isoformat() if self.latest_payoff else None,
            "closedCount": self.closed_count,
        }


def summarize_all(loans: Iterable[Loan], today: Optional[date] = None) -> List[LoanRow]:
    """Pair every loan with its summary, evaluated at a single ``today``."""
    if today is None:
        today = date.today()
    return [(loan, summarize_loan(loan, today=today)) for loan in loans]


def _visible(rows: List[LoanRow], ui: UIState) -> List[LoanRow]:
    if ui.show_closed:
        return list(rows)
    return [row for row in rows if not row[1].is_closed]


def loan_rows(loans: Iterable[Loan], ui: UIState, today: Optional[date] = None) -> List[LoanRow]:
    """Return the loans to display, filtered and sorted per ``ui``.

    Closed loans (outstanding balance of at most one unit) are hidden unless
    ``ui.show_closed`` is set. ``"payoff"`` sorts by the extra-payment payoff
    date, earliest first; ``"outstanding"`` sorts by remaining balance,
    largest first. Both sorts are stable.
    """
    rows = _visible(summarize_all(loans, today), ui)
    if ui.sort_by == "outstanding":
        rows.sort(key=lambda row: row[1].remaining, reverse=True)
    else:
        rows.sort(key=lambda row: row[1].payoff_extra)
    return rows


def portfolio_kpis(loans: Iterable[Loan], ui: UIState, today: Optional[date] = None) -> PortfolioKpis:
    """Headline figures for the portfolio.

    Outstanding balance, interest saved and latest payoff cover the visible
    loans only; the EMI total always covers every loan.
    """
    loans = list(loans)
    rows = summarize_all(loans, today)
    visible = _visible(rows, ui)
    return PortfolioKpis(
        total_outstanding=sum((s.remaining for _, s in visible), Decimal("0")),
        total_emi=sum((emi(l.principal, l.annual_rate, l.tenure_months) for l in loans), Decimal("0")),
        total_interest_saved=sum((s.interest_saved for _, s in visible), Decimal("0")),
        latest_payoff=max((s.payoff_extra for _, s in visible), default=None),
        closed_count=sum(1 for _, s in rows if s.is_closed),
    )
