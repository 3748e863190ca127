"""
Payment Recording Module

Applies the side effects of one auto-paid installment: advances the loan,
records the expense and records the transfer. The three writes share one
storage transaction, so a failure leaves the loan unpaid for the cycle and
eligible on the next run.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
import logging

from .amortization import EMIBreakdown
from .config import SchedulerConfig, get_config
from .ledger import Expense, LedgerStore, Transfer, TransferType, TransferStatus, new_entry_fields
from .loans import Loan, LoanRepository, LoanStatus
from .storage import AsyncStorageInterface


logger = logging.getLogger(__name__)


def expense_description(loan: Loan) -> str:
    lender = f" ({loan.lender})" if loan.lender else ""
    return f"{loan.name} - EMI Payment{lender}"


class LedgerWriter:
    """Writes loan state, expense and transfer for a single installment"""

    def __init__(
        self,
        storage: AsyncStorageInterface,
        loans: LoanRepository,
        ledger: LedgerStore,
        config: Optional[SchedulerConfig] = None
    ):
        self.storage = storage
        self.loans = loans
        self.ledger = ledger
        self.config = config or get_config()

    async def record_payment(self, loan: Loan, breakdown: EMIBreakdown, payment_date: date) -> Loan:
        """
        Record one installment for a loan.

        The loan update is applied as a delta on a fresh read of the loan, not
        on the snapshot the run started from, so concurrent edits to other
        fields are kept.

        Args:
            loan: Loan being paid
            breakdown: Principal/interest split for this installment
            payment_date: Date the installment is booked on

        Returns:
            The loan as stored after the update
        """
        async with self.storage.atomic():
            latest = await self.loans.get(loan.id)

            new_emis_paid = latest.emis_paid + 1
            new_outstanding = max(latest.outstanding_amount - breakdown.principal_paid, Decimal('0'))
            closed = new_emis_paid >= latest.tenure or new_outstanding <= 0

            updated = await self.loans.update(loan.id, {
                "emis_paid": new_emis_paid,
                "outstanding_amount": new_outstanding,
                "status": (LoanStatus.CLOSED if closed else LoanStatus.ACTIVE).value,
                "last_payment_date": payment_date
            })

            await self.ledger.append_expense(Expense(
                **new_entry_fields(),
                user_id=latest.user_id,
                amount=loan.emi_amount,
                date=payment_date,
                category=self.config.expense_category,
                description=expense_description(latest),
                linked_loan_id=latest.id,
                linked_name=latest.name,
                payment_method=self.config.payment_method,
                principal_paid=breakdown.principal_paid,
                interest_paid=breakdown.interest_paid,
                is_auto_generated=True
            ))

            await self.ledger.append_transfer(Transfer(
                **new_entry_fields(),
                user_id=latest.user_id,
                type=TransferType.LOAN_EMI,
                amount=loan.emi_amount,
                date=payment_date,
                description=f"{latest.name} - Auto EMI Payment",
                principal_amount=breakdown.principal_paid,
                interest_amount=breakdown.interest_paid,
                linked_loan_id=latest.id,
                linked_name=latest.name,
                status=TransferStatus.COMPLETED,
                is_auto_generated=True
            ))

        if closed:
            logger.info(f"Loan {loan.id} closed after installment {new_emis_paid}/{latest.tenure}")
        return updated
