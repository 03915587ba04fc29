"""Core calculation engine for the debt calculator.

This module implements the financial logic required to build amortization
schedules for fixed-rate installment loans, optionally paying a constant
extra amount toward principal every month. Every function is pure: results
depend only on the arguments (and, for :func:`summarize_loan`, on the date
treated as "today").
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, getcontext
from typing import List, Optional, Sequence

from .data_models import Loan, LoanSummary, ScheduleRow
from .utils import add_months, to_decimal

getcontext().prec = 28  # increase precision for financial calculations

# Balance at or below which a loan counts as paid off.
EPSILON = Decimal("0.01")
# Months simulated beyond the contractual term before giving up on a loan
# whose installment never catches up with the accruing interest.
EXTRA_ITERATIONS = 600

ZERO = Decimal("0")


def monthly_rate(annual_rate) -> Decimal:
    """Convert a nominal annual rate in percent to a monthly decimal rate."""
    return to_decimal(annual_rate) / Decimal(12) / Decimal(100)


def emi(principal, annual_rate, n: int) -> Decimal:
    """Return the standard fixed installment (EMI) for an ``n``-month loan.

    The formula is:

        payment = P * r * (1 + r)^n / ((1 + r)^n - 1)

    where ``P`` is the principal and ``r`` the monthly interest rate. When the
    rate is zero, the payment simplifies to ``P / n``. A non-positive term
    yields a zero payment.
    """
    if n <= 0:
        return ZERO
    principal = to_decimal(principal)
    rate = monthly_rate(annual_rate)
    if rate == 0:
        return principal / Decimal(n)
    factor = (1 + rate) ** n
    return principal * rate * factor / (factor - 1)


def amortize_with_extra(
    principal,
    annual_rate,
    n: int,
    start_date: date,
    extra=ZERO,
) -> List[ScheduleRow]:
    """Simulate month-by-month repayment with a constant extra payment.

    The installment is computed once from the original terms and held
    constant. Each month interest is charged on the opening balance, the
    contractual principal (``payment - interest``) is repaid and ``extra`` is
    applied on top, capped so the balance never goes negative.

    The loop stops once the balance is at most :data:`EPSILON` or after
    ``n + EXTRA_ITERATIONS`` months, whichever comes first.
    """
    balance = to_decimal(principal)
    extra = to_decimal(extra)
    rate = monthly_rate(annual_rate)
    payment = emi(balance, annual_rate, n)
    ceiling = n + EXTRA_ITERATIONS

    rows: List[ScheduleRow] = []
    index = 0
    while balance > EPSILON and index < ceiling:
        index += 1
        interest = balance * rate
        principal_payment = payment - interest
        extra_applied = extra
        if principal_payment + extra_applied > balance:
            extra_applied = max(ZERO, balance - principal_payment)
        new_balance = max(ZERO, balance - principal_payment - extra_applied)
        rows.append(
            ScheduleRow(
                index=index,
                date=add_months(start_date, index),
                payment=payment,
                interest=interest,
                principal=principal_payment,
                extra_applied=extra_applied,
                balance=new_balance,
            )
        )
        balance = new_balance
    return rows


def schedule_converged(rows: Sequence[ScheduleRow]) -> bool:
    """Return True if the schedule brings the balance down to zero."""
    return not rows or rows[-1].balance <= EPSILON


def _total_interest(rows: Sequence[ScheduleRow]) -> Decimal:
    return sum((row.interest for row in rows), ZERO)


def _balance_as_of(rows: Sequence[ScheduleRow], as_of: date, default: Decimal) -> Decimal:
    remaining = default
    for row in rows:
        if row.date > as_of:
            break
        remaining = row.balance
    return remaining


def summarize_loan(loan: Loan, today: Optional[date] = None) -> LoanSummary:
    """Compute the baseline and extra-payment schedules and their metrics.

    Parameters
    ----------
    loan: Loan
        The loan to summarize. Both simulations use its original principal,
        rate, term and start date; only the extra payment differs.
    today: date, optional
        The date the outstanding balance is evaluated at. Defaults to
        ``date.today()`` at call time, so summaries must be recomputed to
        reflect elapsed time.

    Returns
    -------
    LoanSummary
        Installment, payoff dates, months and interest saved, the balance
        outstanding as of ``today`` and both full schedules.
    """
    if today is None:
        today = date.today()

    base = amortize_with_extra(
        loan.principal, loan.annual_rate, loan.tenure_months, loan.start_date, ZERO
    )
    extra = amortize_with_extra(
        loan.principal, loan.annual_rate, loan.tenure_months, loan.start_date, loan.extra_monthly
    )

    interest_base = _total_interest(base)
    interest_extra = _total_interest(extra)

    return LoanSummary(
        emi=emi(loan.principal, loan.annual_rate, loan.tenure_months),
        payoff_base=base[-1].date if base else loan.start_date,
        payoff_extra=extra[-1].date if extra else loan.start_date,
        months_saved=max(0, len(base) - len(extra)),
        interest_base=interest_base,
        interest_extra=interest_extra,
        interest_saved=max(ZERO, interest_base - interest_extra),
        remaining=_balance_as_of(extra, today, to_decimal(loan.principal)),
        schedule=extra,
        schedule_base=base,
        non_amortizing=not schedule_converged(extra),
    )
