"""
Reminder Planner Module

Finds loans due within a lookahead window and stores one in-app reminder per
loan and due date.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date
from dataclasses import dataclass
from typing import List
import logging

from .clock import Clock
from .due_dates import DueDateResolver
from .loans import Loan, LoanRepository
from .notifications import Notification, NotificationStore


logger = logging.getLogger(__name__)


def format_inr(amount: Decimal) -> str:
    """Whole rupees with Indian digit grouping, e.g. ₹1,23,45,678"""
    rupees = int(Decimal(amount).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    sign = "-" if rupees < 0 else ""
    digits = str(abs(rupees))

    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        groups.insert(0, head)
        digits = ",".join(groups) + "," + tail

    return f"{sign}₹{digits}"


def reminder_message(loan: Loan, days_until: int) -> str:
    amount = format_inr(loan.emi_amount)
    if days_until == 0:
        return f"Your EMI of {amount} for {loan.name} is due today!"
    if days_until == 1:
        return f"Your EMI of {amount} for {loan.name} is due tomorrow."
    return f"Your EMI of {amount} for {loan.name} is due in {days_until} days."


@dataclass
class UpcomingEMI:
    loan: Loan
    days_until: int
    due_date: date


class ReminderPlanner:

    def __init__(
        self,
        loans: LoanRepository,
        notifications: NotificationStore,
        resolver: DueDateResolver,
        clock: Clock
    ):
        self.loans = loans
        self.notifications = notifications
        self.resolver = resolver
        self.clock = clock

    async def upcoming(self, user_id: str, days_ahead: int) -> List[UpcomingEMI]:
        """Active loans due within days_ahead, soonest first"""
        today = self.clock.today()
        upcoming = []

        for loan in await self.loans.list_active(user_id):
            due_date = self.resolver.next_due_date(loan, today)
            days_until = self.resolver.days_until_due(loan, today, due_date)
            if days_until <= days_ahead:
                upcoming.append(UpcomingEMI(loan=loan, days_until=days_until, due_date=due_date))

        upcoming.sort(key=lambda u: u.days_until)
        return upcoming

    async def create_reminders(self, user_id: str, days_ahead: int) -> List[Notification]:
        """
        Store a reminder for every loan due within the window that has none yet.

        A reminder that fails to be checked or stored is logged and skipped;
        the remaining loans are still handled.
        """
        created = []

        for item in await self.upcoming(user_id, days_ahead):
            loan = item.loan
            try:
                if await self.notifications.query(loan.id, item.due_date):
                    continue

                notification = Notification.emi_reminder(
                    user_id=user_id,
                    loan_id=loan.id,
                    loan_name=loan.name,
                    emi_amount=loan.emi_amount,
                    due_date=item.due_date,
                    message=reminder_message(loan, item.days_until)
                )
                await self.notifications.append(notification)
                created.append(notification)
            except Exception as e:
                logger.error(f"Failed to create EMI reminder for loan {loan.id}: {e}")

        if created:
            logger.info(f"Created {len(created)} EMI reminder(s) for user {user_id}")
        return created
