"""Shared fixtures for the debt calculator tests.

Fixture loans mirror the built-in samples: a 25L home loan at 8.2% over
20 years with 2,000 extra per month, and a 6L car loan at 10% over 5 years
with 1,000 extra per month. "Today" is pinned to 15 Jan 2026.
"""

import itertools
import json
from datetime import date
from decimal import Decimal

import pytest

from debt_calc.data_models import Loan
from debt_calc.storage import STATE_KEY, MemoryStorage
from debt_calc.store import LoanStore

TODAY = date(2026, 1, 15)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def home_loan() -> Loan:
    return Loan(
        id="h1",
        description="Home Loan",
        principal=Decimal("2500000"),
        start_date=date(2023, 4, 1),
        annual_rate=Decimal("8.2"),
        tenure_months=240,
        extra_monthly=Decimal("2000"),
    )


@pytest.fixture
def car_loan() -> Loan:
    return Loan(
        id="c1",
        description="Car Loan",
        principal=Decimal("600000"),
        start_date=date(2024, 6, 15),
        annual_rate=Decimal("10"),
        tenure_months=60,
        extra_monthly=Decimal("1000"),
    )


@pytest.fixture
def closed_loan() -> Loan:
    """A one-year loan that finished long before ``TODAY``."""
    return Loan(
        id="old",
        description="Old Personal Loan",
        principal=Decimal("50000"),
        start_date=date(2015, 1, 10),
        annual_rate=Decimal("12"),
        tenure_months=12,
        extra_monthly=Decimal("0"),
    )


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"N{next(counter)}"


@pytest.fixture
def store(memory_storage, id_factory) -> LoanStore:
    """A store on empty storage, so it starts from the sample loans."""
    return LoanStore(memory_storage, id_factory=id_factory, today=lambda: TODAY)


@pytest.fixture
def empty_store(id_factory) -> LoanStore:
    """A store whose saved state has no loans."""
    blob = {"loans": [], "ui": {"showClosed": True, "sortBy": "payoff", "selectedId": None}}
    storage = MemoryStorage({STATE_KEY: json.dumps(blob)})
    return LoanStore(storage, id_factory=id_factory, today=lambda: TODAY)
