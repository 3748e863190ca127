"""Shared fixtures for the EMI scheduler tests."""

from datetime import date
from decimal import Decimal

import pytest

from emi_scheduler.clock import FixedClock
from emi_scheduler.config import SchedulerConfig
from emi_scheduler.day_gate import InMemoryDayGateStore
from emi_scheduler.ledger import LedgerStore
from emi_scheduler.loans import Loan, LoanRepository
from emi_scheduler.notifications import NotificationStore
from emi_scheduler.scheduler import EMIScheduler
from emi_scheduler.storage import AsyncInMemoryStorage


USER_ID = "user-001"


def make_loan(**overrides) -> Loan:
    """Loan from the worked example: 1,00,000 at 12% with a 2,200 EMI due on the 5th"""
    fields = dict(
        user_id=USER_ID,
        name="Home Loan",
        lender="HDFC",
        outstanding_amount=Decimal('100000'),
        interest_rate=Decimal('12'),
        emi_amount=Decimal('2200'),
        tenure=60,
        emis_paid=0,
        due_day=5,
    )
    fields.update(overrides)
    return Loan.create(**fields)


@pytest.fixture
def config():
    return SchedulerConfig(storage_type="memory", day_gate_path="", timezone="")


@pytest.fixture
def storage():
    return AsyncInMemoryStorage()


@pytest.fixture
def loans(storage):
    return LoanRepository(storage)


@pytest.fixture
def ledger(storage):
    return LedgerStore(storage)


@pytest.fixture
def notifications(storage):
    return NotificationStore(storage)


@pytest.fixture
def clock():
    return FixedClock(date(2024, 3, 5))


@pytest.fixture
def day_gate():
    return InMemoryDayGateStore()


@pytest.fixture
def scheduler(loans, ledger, notifications, day_gate, clock, config):
    return EMIScheduler(
        loans=loans,
        ledger=ledger,
        notifications=notifications,
        user_id=USER_ID,
        day_gate=day_gate,
        clock=clock,
        config=config
    )
