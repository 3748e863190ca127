"""
EMI Scheduler Module

Runs the daily installment check for a user: finds loans due today, skips
cycles the ledger already shows as paid, splits each installment into
principal and interest and records it. Each loan is handled independently;
one loan failing never stops the others.

Runs happen when a client session starts, so a cycle whose due day passes
without a run is not picked up later. A failed cycle stays eligible with no
backoff until the ledger shows it recorded.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import logging
import uuid

from .amortization import AmortizationEngine
from .clock import Clock, SystemClock
from .config import SchedulerConfig, get_config
from .day_gate import DayGateStore, InMemoryDayGateStore
from .due_dates import DueDateResolver
from .exceptions import GateError, GuardReadError
from .idempotency import IdempotencyGuard
from .ledger import LedgerStore
from .loans import Loan, LoanRepository
from .logging_config import log_action
from .notifications import Notification, NotificationStore
from .payments import LedgerWriter
from .reminders import ReminderPlanner, UpcomingEMI


logger = logging.getLogger(__name__)


class PaymentStatus(Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    SKIPPED = "skipped"     # Due today but the ledger could not be checked


@dataclass
class PaymentResult:
    """Outcome for one loan in a run"""
    loan_id: str
    loan_name: str
    amount: Decimal
    status: PaymentStatus
    principal_paid: Optional[Decimal] = None
    interest_paid: Optional[Decimal] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loan_id": self.loan_id,
            "loan_name": self.loan_name,
            "amount": str(self.amount),
            "status": self.status.value,
            "principal_paid": str(self.principal_paid) if self.principal_paid is not None else None,
            "interest_paid": str(self.interest_paid) if self.interest_paid is not None else None,
            "error": self.error
        }


@dataclass
class RunReport:
    processed_count: int = 0
    skipped_count: int = 0
    results: List[PaymentResult] = field(default_factory=list)
    gated: bool = False             # Run skipped because today was already checked
    error: Optional[str] = None     # Run could not enumerate loans

    def result_for(self, loan_id: str) -> Optional[PaymentResult]:
        return next((r for r in self.results if r.loan_id == loan_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed_count": self.processed_count,
            "skipped_count": self.skipped_count,
            "results": [r.to_dict() for r in self.results],
            "gated": self.gated,
            "error": self.error
        }


class EMIScheduler:
    """
    Daily EMI driver for one user.

    Collaborators are injected; anything omitted gets the default built from
    configuration. The day gate is only a cheap skip for repeat runs on the
    same device and day; correctness comes from the ledger check.
    """

    def __init__(
        self,
        loans: LoanRepository,
        ledger: LedgerStore,
        notifications: NotificationStore,
        user_id: Optional[str] = None,
        day_gate: Optional[DayGateStore] = None,
        clock: Optional[Clock] = None,
        config: Optional[SchedulerConfig] = None,
        resolver: Optional[DueDateResolver] = None,
        guard: Optional[IdempotencyGuard] = None,
        engine: Optional[AmortizationEngine] = None,
        writer: Optional[LedgerWriter] = None,
        planner: Optional[ReminderPlanner] = None
    ):
        self.config = config or get_config()
        self.loans = loans
        self.ledger = ledger
        self.notifications = notifications
        self.user_id = user_id
        self.day_gate = day_gate or InMemoryDayGateStore()
        self.clock = clock or SystemClock(self.config.timezone or None)
        self.resolver = resolver or DueDateResolver()
        self.guard = guard or IdempotencyGuard(ledger)
        self.engine = engine or AmortizationEngine()
        self.writer = writer or LedgerWriter(ledger.storage, loans, ledger, self.config)
        self.planner = planner or ReminderPlanner(loans, notifications, self.resolver, self.clock)
        self._processing = False

    async def initialize(self, user_id: Optional[str]) -> RunReport:
        """
        Run the once-a-day check for a user.

        Returns an empty gated report when this device already checked today.
        The gate is set only after a run that managed to enumerate loans.
        """
        if not user_id:
            logger.warning("No user logged in, skipping EMI scheduler")
            return RunReport()
        self.user_id = user_id
        today = self.clock.today()

        try:
            last_checked = self.day_gate.get(user_id)
        except GateError as e:
            logger.warning(f"Day gate unreadable, running anyway: {e}")
            last_checked = None

        if last_checked == today:
            logger.info(f"EMI check already done today for user {user_id}")
            return RunReport(gated=True)

        logger.info(f"Running daily EMI check for user {user_id}")
        report = await self.process_daily_emis()

        if report.error is None:
            try:
                self.day_gate.set(user_id, today)
            except GateError as e:
                logger.warning(f"Could not record day gate for user {user_id}: {e}")

        return report

    async def process_daily_emis(self) -> RunReport:
        """Process every active loan due today; never raises"""
        if self._processing:
            logger.warning("EMI processing already in progress")
            return RunReport()
        if not self.user_id:
            logger.warning("No user set, skipping EMI processing")
            return RunReport()

        self._processing = True
        try:
            return await self._run(self.user_id)
        finally:
            self._processing = False

    async def _run(self, user_id: str) -> RunReport:
        run_id = str(uuid.uuid4())
        today = self.clock.today()
        report = RunReport()

        try:
            active_loans = await self.loans.list_active(user_id)
        except Exception as e:
            logger.error(f"Error loading loans for user {user_id}: {e}")
            report.error = str(e)
            return report

        logger.info(f"Found {len(active_loans)} active loans for user {user_id}")

        for loan in active_loans:
            if not self.resolver.is_due(loan, today):
                continue

            if loan.emis_paid >= loan.tenure:
                logger.info(f"Loan {loan.name} fully paid")
                report.skipped_count += 1
                continue

            try:
                if await self.guard.already_recorded(loan.id, today.year, today.month):
                    logger.info(f"EMI already recorded for {loan.name} this month")
                    report.skipped_count += 1
                    continue
            except GuardReadError as e:
                logger.error(str(e))
                report.skipped_count += 1
                report.results.append(PaymentResult(
                    loan_id=loan.id,
                    loan_name=loan.name,
                    amount=loan.emi_amount,
                    status=PaymentStatus.SKIPPED,
                    error=str(e)
                ))
                continue

            result = await self._process_loan(loan, user_id, run_id)
            report.results.append(result)
            if result.status == PaymentStatus.PROCESSED:
                report.processed_count += 1

        logger.info(
            f"EMI processing complete: {report.processed_count} processed, "
            f"{report.skipped_count} skipped"
        )
        return report

    async def _process_loan(self, loan: Loan, user_id: str, run_id: str) -> PaymentResult:
        today = self.clock.today()
        try:
            breakdown = self.engine.split(loan.outstanding_amount, loan.interest_rate, loan.emi_amount)
            await self.writer.record_payment(loan, breakdown, today)
        except Exception as e:
            log_action(
                logger, "error", f"Failed to process EMI for {loan.name}: {e}",
                user_id=user_id, action="emi_failed", resource=loan.id, correlation_id=run_id
            )
            return PaymentResult(
                loan_id=loan.id,
                loan_name=loan.name,
                amount=loan.emi_amount,
                status=PaymentStatus.FAILED,
                error=str(e)
            )

        log_action(
            logger, "info", f"Auto-processed EMI for {loan.name}",
            user_id=user_id, action="emi_processed", resource=loan.id, correlation_id=run_id,
            extra={
                "amount": str(loan.emi_amount),
                "principal_paid": str(breakdown.principal_paid),
                "interest_paid": str(breakdown.interest_paid)
            }
        )
        return PaymentResult(
            loan_id=loan.id,
            loan_name=loan.name,
            amount=loan.emi_amount,
            status=PaymentStatus.PROCESSED,
            principal_paid=breakdown.principal_paid,
            interest_paid=breakdown.interest_paid
        )

    async def get_upcoming_emis(self, days_ahead: Optional[int] = None) -> List[UpcomingEMI]:
        if days_ahead is None:
            days_ahead = self.config.upcoming_days_ahead
        if not self.user_id:
            return []
        try:
            return await self.planner.upcoming(self.user_id, days_ahead)
        except Exception as e:
            logger.error(f"Error getting upcoming EMIs: {e}")
            return []

    async def create_emi_reminders(self) -> List[Notification]:
        if not self.user_id:
            return []
        try:
            return await self.planner.create_reminders(self.user_id, self.config.reminder_lookahead_days)
        except Exception as e:
            logger.error(f"Error creating EMI reminders: {e}")
            return []

    async def get_unread_notifications(self) -> List[Notification]:
        if not self.user_id:
            return []
        try:
            return await self.notifications.list_unread(self.user_id)
        except Exception as e:
            logger.error(f"Error getting notifications: {e}")
            return []

    async def mark_as_read(self, notification_id: str) -> bool:
        try:
            return await self.notifications.mark_as_read(notification_id)
        except Exception as e:
            logger.error(f"Error marking notification {notification_id} as read: {e}")
            return False
