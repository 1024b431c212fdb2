"""
conftest.py - Shared pytest fixtures for loan ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- A revolving loan with a commitment, a founding rate and one draw
- A January billing period
- Seeded in-memory stores and a pinned clock
"""

import logging

import pytest
from datetime import date

from loan_ledger import (
    Period,
    DayCountConvention,
    InMemoryAccrualStore,
    FixedClock,
)

from tests.fake_store import (
    FakeStore, LOAN_ID, JAN_1, JAN_31,
    make_loan, revolver_events, seed_store,
)


@pytest.fixture
def loan():
    return make_loan()


@pytest.fixture
def act360_loan():
    return make_loan(day_count=DayCountConvention.ACT_360)


@pytest.fixture
def events():
    return revolver_events()


@pytest.fixture
def january():
    return Period("P1", LOAN_ID, JAN_1, JAN_31)


@pytest.fixture
def clock():
    return FixedClock(date(2025, 1, 15))


@pytest.fixture
def store(loan, events, january):
    """In-memory store holding the revolver and its January period."""
    return seed_store(InMemoryAccrualStore(), loan, events, [january])


@pytest.fixture
def fake_store(loan, events, january):
    """Failure-injecting store holding the revolver and its January period."""
    return seed_store(FakeStore(), loan, events, [january])


@pytest.fixture
def restore_package_logger():
    """Undo setup_logging() so later tests see the default logger wiring."""
    package_logger = logging.getLogger("loan_ledger")
    handlers = package_logger.handlers[:]
    level = package_logger.level
    propagate = package_logger.propagate
    yield package_logger
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate
