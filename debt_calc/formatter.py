"""Output helpers for the debt calculator.

This module provides simple functions to render loan summaries, amortization
schedules and the portfolio overview in a tabular text format, plus the flat
CSV export. Currency values are printed in base units without any locale
specific grouping or symbols.
"""

from __future__ import annotations

import csv
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import IO, Iterable, List, Optional, Union

from .data_models import Loan, LoanSummary, ScheduleRow
from .engine import summarize_loan
from .portfolio import LoanRow, PortfolioKpis

CSV_HEADER = [
    "Description",
    "Principal",
    "StartDate",
    "AnnualRate",
    "TenureMonths",
    "ExtraMonthly",
    "Remaining",
    "EMI",
    "PayoffExtra",
    "InterestSaved",
]


def whole_units(value: Decimal) -> int:
    """Round a currency amount to whole units, halves away from zero."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def print_summary(loan: Loan, summary: LoanSummary) -> None:
    """Print the metrics of a single loan in a human-readable format."""
    print(f"{loan.description} ({loan.id})")
    print("-" * 72)
    print(f"Principal          : {loan.principal:.2f}")
    print(f"Annual rate        : {loan.annual_rate}%")
    print(f"Tenure             : {loan.tenure_months} months from {loan.start_date.isoformat()}")
    print(f"Extra per month    : {loan.extra_monthly:.2f}")
    print(f"EMI (standard)     : {summary.emi:.2f}")
    print(f"Remaining          : {summary.remaining:.2f}")
    print(f"Payoff (no extra)  : {summary.payoff_base.isoformat()}")
    print(f"Payoff (extra)     : {summary.payoff_extra.isoformat()}")
    print(f"Interest (base)    : {summary.interest_base:.2f}")
    print(f"Interest (extra)   : {summary.interest_extra:.2f}")
    print(f"Interest saved     : {summary.interest_saved:.2f}")
    if summary.months_saved:
        print(f"Term reduction     : {summary.months_saved} months")
    if summary.non_amortizing:
        print("Warning            : installment does not cover interest; loan never pays off")
    print("-" * 72)


def print_schedule(schedule: Iterable[ScheduleRow]) -> None:
    """Print an amortization schedule as a simple table."""
    headers = ["Month", "Date", "Payment", "Interest", "Principal", "Extra", "Balance"]
    print("\t".join(headers))
    for row in schedule:
        print(
            "\t".join(
                [
                    str(row.index),
                    row.date.isoformat(),
                    f"{row.payment:.2f}",
                    f"{row.interest:.2f}",
                    f"{row.principal:.2f}",
                    f"{row.extra_applied:.2f}",
                    f"{row.balance:.2f}",
                ]
            )
        )


def print_portfolio(rows: List[LoanRow], kpis: PortfolioKpis, selected_id: Optional[str] = None) -> None:
    """Print the loan table followed by the portfolio totals."""
    print(f"{'':2s}{'ID':8s} {'Description':24s} {'Remaining':>14s} {'EMI':>12s} {'Payoff':>12s} {'Saved':>12s}")
    for loan, summary in rows:
        marker = "* " if loan.id == selected_id else "  "
        print(
            f"{marker}{loan.id:8s} {loan.description[:24]:24s} "
            f"{whole_units(summary.remaining):14d} {whole_units(summary.emi):12d} "
            f"{summary.payoff_extra.isoformat():>12s} {whole_units(summary.interest_saved):12d}"
        )
    print("=" * 72)
    latest = kpis.latest_payoff.strftime("%b %Y") if kpis.latest_payoff else "-"
    print(f"Total outstanding  : {whole_units(kpis.total_outstanding)}")
    print(f"Total EMI (std.)   : {whole_units(kpis.total_emi)}")
    print(f"Interest saved     : {whole_units(kpis.total_interest_saved)}")
    print(f"Latest payoff      : {latest}")
    print(f"Closed loans       : {kpis.closed_count}")


def write_csv(stream: IO[str], loans: Iterable[Loan], today: Optional[date] = None) -> None:
    """Write one CSV row per loan: raw fields followed by derived metrics."""
    if today is None:
        today = date.today()
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for loan in loans:
        summary = summarize_loan(loan, today=today)
        writer.writerow(
            [
                loan.description,
                loan.principal,
                loan.start_date.isoformat(),
                loan.annual_rate,
                loan.tenure_months,
                loan.extra_monthly,
                whole_units(summary.remaining),
                whole_units(summary.emi),
                summary.payoff_extra.isoformat(),
                whole_units(summary.interest_saved),
            ]
        )


def export_to_csv(path: Union[str, Path], loans: Iterable[Loan], today: Optional[date] = None) -> None:
    """Export the loan summary table to a CSV file."""
    with Path(path).open("w", newline="", encoding="utf-8") as f:
        write_csv(f, loans, today)
