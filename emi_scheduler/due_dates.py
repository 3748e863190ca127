"""
Due Date Module

Resolves the day of month a loan's installment falls on and the distance to
its next occurrence. Months shorter than the due day clamp it to their last
day, so a loan due on the 31st falls due on 28 February.
"""

from datetime import date
from typing import Optional
import calendar
import logging

from .loans import Loan


logger = logging.getLogger(__name__)

DEFAULT_DUE_DAY = 1


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def occurrence_in_month(year: int, month: int, due_day: int) -> date:
    """The due date in a given month, clamped to that month's length"""
    return date(year, month, min(due_day, days_in_month(year, month)))


def _next_month(year: int, month: int):
    if month == 12:
        return year + 1, 1
    return year, month + 1


class DueDateResolver:
    """Due-day resolution with explicit day, then start date, then the 1st"""

    def resolve(self, loan: Loan) -> int:
        if loan.due_day is not None:
            if 1 <= loan.due_day <= 31:
                return loan.due_day
            logger.warning(f"Loan {loan.id} has out-of-range due day {loan.due_day}, falling back")
        if loan.start_date is not None:
            return loan.start_date.day
        return DEFAULT_DUE_DAY

    def due_date_in_month(self, loan: Loan, year: int, month: int) -> date:
        return occurrence_in_month(year, month, self.resolve(loan))

    def is_due(self, loan: Loan, today: date) -> bool:
        """Whether this month's occurrence of the due day is today"""
        return self.due_date_in_month(loan, today.year, today.month) == today

    def next_due_date(self, loan: Loan, today: date) -> date:
        """Today or the next occurrence of the due day after it"""
        due_day = self.resolve(loan)
        this_month = occurrence_in_month(today.year, today.month, due_day)
        if this_month >= today:
            return this_month
        year, month = _next_month(today.year, today.month)
        return occurrence_in_month(year, month, due_day)

    def days_until_due(self, loan: Loan, today: date, due_date: Optional[date] = None) -> int:
        """Non-negative days from today to the next due date"""
        if due_date is None:
            due_date = self.next_due_date(loan, today)
        return (due_date - today).days
