"""
Tests for the daily EMI scheduler run
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from emi_scheduler.day_gate import InMemoryDayGateStore
from emi_scheduler.exceptions import GateError, GuardReadError, ReadError, WriteError
from emi_scheduler.idempotency import IdempotencyGuard
from emi_scheduler.ledger import LedgerStore, Transfer, TransferType, new_entry_fields
from emi_scheduler.loans import LoanRepository, LoanStatus
from emi_scheduler.scheduler import EMIScheduler, PaymentStatus, RunReport

from .conftest import USER_ID, make_loan


class FlakyLedger(LedgerStore):
    """Fails to record transfers for selected loans"""

    def __init__(self, storage):
        super().__init__(storage)
        self.failing_loans = set()

    async def append_transfer(self, transfer):
        if transfer.linked_loan_id in self.failing_loans:
            raise WriteError("transfer write rejected")
        return await super().append_transfer(transfer)


class StallingLedger(LedgerStore):
    """Stalls inside the transaction, then fails, for one user's transfers"""

    def __init__(self, storage, failing_user):
        super().__init__(storage)
        self.failing_user = failing_user

    async def append_transfer(self, transfer):
        if transfer.user_id == self.failing_user:
            await asyncio.sleep(0.05)
            raise WriteError("transfer write timed out")
        return await super().append_transfer(transfer)


class UnreadableLoans(LoanRepository):

    async def list_active(self, user_id):
        raise ReadError("loans table unavailable")


class SlowLoans(LoanRepository):

    async def list_active(self, user_id):
        await asyncio.sleep(0.05)
        return await super().list_active(user_id)


class BlindGuard(IdempotencyGuard):

    async def already_recorded(self, loan_id, year, month):
        raise GuardReadError(f"Cannot confirm whether loan {loan_id} was paid")


class BrokenDayGate(InMemoryDayGateStore):

    def get(self, user_id):
        raise GateError("gate file corrupt")


def build_scheduler(loans, ledger, notifications, clock, config, **kwargs):
    return EMIScheduler(
        loans=loans,
        ledger=ledger,
        notifications=notifications,
        user_id=USER_ID,
        clock=clock,
        config=config,
        **kwargs
    )


class TestDailyProcessing:

    @pytest.mark.asyncio
    async def test_processes_loan_due_today(self, scheduler, loans, ledger):
        loan = await loans.add(make_loan())

        report = await scheduler.process_daily_emis()

        assert report.processed_count == 1
        assert report.skipped_count == 0
        result = report.result_for(loan.id)
        assert result.status == PaymentStatus.PROCESSED
        assert result.amount == Decimal('2200')
        assert result.principal_paid == Decimal('1200')
        assert result.interest_paid == Decimal('1000')

        updated = await loans.get(loan.id)
        assert updated.emis_paid == 1
        assert updated.outstanding_amount == Decimal('98800')
        assert len(await ledger.list_transfers(loan.id)) == 1
        assert len(await ledger.list_expenses(loan.id)) == 1

    @pytest.mark.asyncio
    async def test_second_run_same_day_records_nothing(self, scheduler, loans, ledger):
        loan = await loans.add(make_loan())

        await scheduler.process_daily_emis()
        report = await scheduler.process_daily_emis()

        assert report.processed_count == 0
        assert report.skipped_count == 1
        assert len(await ledger.list_transfers(loan.id)) == 1
        assert (await loans.get(loan.id)).emis_paid == 1

    @pytest.mark.asyncio
    async def test_next_month_is_processed_again(self, scheduler, loans, clock):
        loan = await loans.add(make_loan())

        await scheduler.process_daily_emis()
        clock.set(date(2024, 4, 5))
        report = await scheduler.process_daily_emis()

        assert report.processed_count == 1
        updated = await loans.get(loan.id)
        assert updated.emis_paid == 2
        # 98800 * 1% = 988.00 interest, 1212.00 principal
        assert updated.outstanding_amount == Decimal('97588')

    @pytest.mark.asyncio
    async def test_loan_not_due_is_untouched(self, scheduler, loans):
        loan = await loans.add(make_loan(due_day=10))

        report = await scheduler.process_daily_emis()

        assert report.processed_count == 0
        assert report.skipped_count == 0
        assert report.results == []
        assert (await loans.get(loan.id)).emis_paid == 0

    @pytest.mark.asyncio
    async def test_manual_prepayment_counts_as_paid(self, scheduler, loans, ledger):
        loan = await loans.add(make_loan())
        await ledger.append_transfer(Transfer(
            **new_entry_fields(),
            user_id=USER_ID,
            type=TransferType.LOAN_PREPAYMENT,
            amount=Decimal('10000'),
            date=date(2024, 3, 2),
            description="Part prepayment",
            principal_amount=Decimal('10000'),
            interest_amount=Decimal('0'),
            linked_loan_id=loan.id,
            linked_name=loan.name
        ))

        report = await scheduler.process_daily_emis()

        assert report.processed_count == 0
        assert report.skipped_count == 1
        assert (await loans.get(loan.id)).emis_paid == 0

    @pytest.mark.asyncio
    async def test_final_installment_closes_loan(self, scheduler, loans):
        loan = await loans.add(make_loan(tenure=5, emis_paid=4))

        report = await scheduler.process_daily_emis()

        assert report.processed_count == 1
        closed = await loans.get(loan.id)
        assert closed.emis_paid == 5
        assert closed.status == LoanStatus.CLOSED
        assert await loans.list_active(USER_ID) == []

    @pytest.mark.asyncio
    async def test_exhausted_active_loan_is_skipped(self, scheduler, loans, ledger):
        loan = await loans.add(make_loan(tenure=12, emis_paid=12))

        report = await scheduler.process_daily_emis()

        assert report.processed_count == 0
        assert report.skipped_count == 1
        assert await ledger.list_transfers(loan.id) == []

    @pytest.mark.asyncio
    async def test_due_day_31_in_february(self, scheduler, loans, clock):
        clock.set(date(2023, 2, 28))
        loan = await loans.add(make_loan(due_day=31))

        report = await scheduler.process_daily_emis()

        assert report.result_for(loan.id).status == PaymentStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_start_date_supplies_due_day(self, scheduler, loans):
        loan = await loans.add(make_loan(due_day=None, start_date=date(2023, 7, 5)))

        report = await scheduler.process_daily_emis()

        assert report.result_for(loan.id).status == PaymentStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_missing_emi_amount_fails_that_loan(self, scheduler, loans):
        loan = await loans.add(make_loan(emi_amount=Decimal('0')))

        report = await scheduler.process_daily_emis()

        result = report.result_for(loan.id)
        assert result.status == PaymentStatus.FAILED
        assert result.error == "No EMI amount set for this loan"
        assert (await loans.get(loan.id)).emis_paid == 0


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_one_failing_loan_does_not_stop_others(
        self, storage, loans, notifications, clock, config
    ):
        ledger = FlakyLedger(storage)
        first = await loans.add(make_loan(name="Loan 1"))
        second = await loans.add(make_loan(name="Loan 2"))
        third = await loans.add(make_loan(name="Loan 3"))
        ledger.failing_loans.add(second.id)
        scheduler = build_scheduler(loans, ledger, notifications, clock, config)

        report = await scheduler.process_daily_emis()

        assert report.processed_count == 2
        assert report.result_for(first.id).status == PaymentStatus.PROCESSED
        assert report.result_for(third.id).status == PaymentStatus.PROCESSED
        failed = report.result_for(second.id)
        assert failed.status == PaymentStatus.FAILED
        assert "transfer write rejected" in failed.error

        unchanged = await loans.get(second.id)
        assert unchanged.emis_paid == 0
        assert unchanged.outstanding_amount == Decimal('100000')
        assert await ledger.list_expenses(second.id) == []

        # The failed cycle stays eligible
        ledger.failing_loans.clear()
        retry = await scheduler.process_daily_emis()
        assert retry.processed_count == 1
        assert retry.skipped_count == 2
        assert retry.result_for(second.id).status == PaymentStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_unreadable_ledger_skips_loan(self, storage, loans, ledger, notifications, clock, config):
        loan = await loans.add(make_loan())
        scheduler = build_scheduler(loans, ledger, notifications, clock, config, guard=BlindGuard(ledger))

        report = await scheduler.process_daily_emis()

        assert report.processed_count == 0
        assert report.skipped_count == 1
        assert report.result_for(loan.id).status == PaymentStatus.SKIPPED
        assert await ledger.list_transfers(loan.id) == []

    @pytest.mark.asyncio
    async def test_unreadable_loans_reports_error(self, storage, ledger, notifications, clock, config):
        day_gate = InMemoryDayGateStore()
        scheduler = build_scheduler(
            UnreadableLoans(storage), ledger, notifications, clock, config, day_gate=day_gate
        )

        report = await scheduler.initialize(USER_ID)

        assert report.error is not None
        assert report.processed_count == 0
        assert day_gate.get(USER_ID) is None

    @pytest.mark.asyncio
    async def test_concurrent_runs_do_not_overlap(self, storage, ledger, notifications, clock, config):
        loans = SlowLoans(storage)
        loan = await loans.add(make_loan())
        scheduler = build_scheduler(loans, ledger, notifications, clock, config)

        reports = await asyncio.gather(
            scheduler.process_daily_emis(),
            scheduler.process_daily_emis()
        )

        assert sorted(r.processed_count for r in reports) == [0, 1]
        assert len(await ledger.list_transfers(loan.id)) == 1

    @pytest.mark.asyncio
    async def test_users_sharing_storage_keep_failures_isolated(
        self, storage, loans, notifications, clock, config
    ):
        ledger = StallingLedger(storage, failing_user="user-a")
        loan_a = await loans.add(make_loan(user_id="user-a", name="Loan A"))
        loan_b = await loans.add(make_loan(user_id="user-b", name="Loan B"))
        scheduler_a = EMIScheduler(loans, ledger, notifications, user_id="user-a", clock=clock, config=config)
        scheduler_b = EMIScheduler(loans, ledger, notifications, user_id="user-b", clock=clock, config=config)

        report_a, report_b = await asyncio.gather(
            scheduler_a.process_daily_emis(),
            scheduler_b.process_daily_emis()
        )

        assert report_a.result_for(loan_a.id).status == PaymentStatus.FAILED
        assert report_b.result_for(loan_b.id).status == PaymentStatus.PROCESSED

        unchanged = await loans.get(loan_a.id)
        assert unchanged.emis_paid == 0
        assert unchanged.outstanding_amount == Decimal('100000')
        assert await ledger.list_expenses(loan_a.id) == []
        assert await ledger.list_transfers(loan_a.id) == []

        paid = await loans.get(loan_b.id)
        assert paid.emis_paid == 1
        assert len(await ledger.list_transfers(loan_b.id)) == 1

    @pytest.mark.asyncio
    async def test_malformed_loan_does_not_stop_batch(self, scheduler, storage, loans):
        loan = await loans.add(make_loan())
        broken = make_loan(name="Paused Loan").to_dict()
        broken["status"] = "paused"
        await storage.save("loans", broken["id"], broken)

        report = await scheduler.process_daily_emis()

        assert report.error is None
        assert report.processed_count == 1
        assert report.result_for(loan.id).status == PaymentStatus.PROCESSED
        assert report.result_for(broken["id"]) is None


class TestInitialize:

    @pytest.mark.asyncio
    async def test_gate_skips_second_run_same_day(self, scheduler, loans, day_gate):
        await loans.add(make_loan())

        first = await scheduler.initialize(USER_ID)
        second = await scheduler.initialize(USER_ID)

        assert first.processed_count == 1
        assert not first.gated
        assert second.gated
        assert second.results == []
        assert day_gate.get(USER_ID) == date(2024, 3, 5)

    @pytest.mark.asyncio
    async def test_gate_reopens_next_day(self, scheduler, loans, clock, day_gate):
        await loans.add(make_loan(due_day=6))

        first = await scheduler.initialize(USER_ID)
        clock.set(date(2024, 3, 6))
        second = await scheduler.initialize(USER_ID)

        assert first.processed_count == 0
        assert not second.gated
        assert second.processed_count == 1
        assert day_gate.get(USER_ID) == date(2024, 3, 6)

    @pytest.mark.asyncio
    async def test_gate_error_does_not_block_run(self, loans, ledger, notifications, clock, config):
        await loans.add(make_loan())
        scheduler = build_scheduler(loans, ledger, notifications, clock, config, day_gate=BrokenDayGate())

        report = await scheduler.initialize(USER_ID)

        assert report.processed_count == 1

    @pytest.mark.asyncio
    async def test_other_device_ran_first(self, loans, ledger, notifications, clock, config):
        """A second device with its own gate finds the ledger already updated"""
        loan = await loans.add(make_loan())
        phone = build_scheduler(loans, ledger, notifications, clock, config, day_gate=InMemoryDayGateStore())
        laptop = build_scheduler(loans, ledger, notifications, clock, config, day_gate=InMemoryDayGateStore())

        await phone.initialize(USER_ID)
        report = await laptop.initialize(USER_ID)

        assert report.processed_count == 0
        assert report.skipped_count == 1
        assert len(await ledger.list_transfers(loan.id)) == 1

    @pytest.mark.asyncio
    async def test_no_user(self, scheduler):
        report = await scheduler.initialize(None)
        assert report == RunReport()

    def test_report_to_dict(self):
        report = RunReport(processed_count=1, skipped_count=2, gated=False)
        assert report.to_dict() == {
            "processed_count": 1,
            "skipped_count": 2,
            "results": [],
            "gated": False,
            "error": None
        }


class TestSchedulerReminders:

    @pytest.mark.asyncio
    async def test_upcoming_and_reminders(self, scheduler, loans):
        soon = await loans.add(make_loan(name="Soon", due_day=7))
        await loans.add(make_loan(name="Later", due_day=11))

        upcoming = await scheduler.get_upcoming_emis()
        assert [u.loan.name for u in upcoming] == ["Soon", "Later"]

        created = await scheduler.create_emi_reminders()
        assert [n.loan_id for n in created] == [soon.id]

        unread = await scheduler.get_unread_notifications()
        assert [n.id for n in unread] == [created[0].id]

        assert await scheduler.mark_as_read(created[0].id)
        assert await scheduler.get_unread_notifications() == []

    @pytest.mark.asyncio
    async def test_without_user(self, loans, ledger, notifications, clock, config):
        scheduler = EMIScheduler(loans, ledger, notifications, clock=clock, config=config)

        assert await scheduler.get_upcoming_emis() == []
        assert await scheduler.create_emi_reminders() == []
        assert await scheduler.get_unread_notifications() == []
        assert (await scheduler.process_daily_emis()).processed_count == 0
