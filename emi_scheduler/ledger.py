"""
Ledger Module

Append-only store of the financial entries the scheduler produces: expenses
for budgeting and transfers for net-worth tracking. Other parts of the system
write to the same tables, so the ledger is the source of truth for whether a
billing cycle has been paid.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List
from enum import Enum
import uuid

from .storage import AsyncStorageInterface, StorageRecord
from .exceptions import ReadError, WriteError


class TransferType(Enum):
    """Transfer kinds recorded against loans"""
    LOAN_EMI = "loan_emi"
    LOAN_PREPAYMENT = "loan_prepayment"
    LOAN_DISBURSEMENT = "loan_disbursement"


# Transfer types that settle a loan's billing cycle
CYCLE_SETTLING_TYPES = (TransferType.LOAN_EMI, TransferType.LOAN_PREPAYMENT)


class TransferStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class Expense(StorageRecord):
    """Expense entry linked to a loan"""
    user_id: str
    amount: Decimal
    date: date
    category: str
    description: str
    linked_loan_id: str
    linked_name: str
    payment_method: str = "Bank Transfer"
    linked_type: str = "loan"
    linked_sub_type: str = "emi"
    principal_paid: Decimal = Decimal('0')
    interest_paid: Decimal = Decimal('0')
    is_auto_generated: bool = False


@dataclass
class Transfer(StorageRecord):
    """Transfer entry carrying a loan payment's principal/interest split"""
    user_id: str
    type: TransferType
    amount: Decimal
    date: date
    description: str
    principal_amount: Decimal
    interest_amount: Decimal
    linked_loan_id: str
    linked_name: str
    linked_type: str = "loan"
    status: TransferStatus = TransferStatus.COMPLETED
    is_auto_generated: bool = False


def new_entry_fields() -> Dict[str, Any]:
    """Id and timestamps for a fresh ledger entry"""
    now = datetime.now(timezone.utc)
    return {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now}


def _transfer_from_dict(data: Dict[str, Any]) -> Transfer:
    return Transfer(
        id=data["id"],
        created_at=datetime.fromisoformat(data["created_at"]),
        updated_at=datetime.fromisoformat(data["updated_at"]),
        user_id=data.get("user_id", ""),
        type=TransferType(data["type"]),
        amount=Decimal(data["amount"]),
        date=datetime.fromisoformat(data["date"]).date(),
        description=data.get("description", ""),
        principal_amount=Decimal(data.get("principal_amount") or "0"),
        interest_amount=Decimal(data.get("interest_amount") or "0"),
        linked_loan_id=data["linked_loan_id"],
        linked_name=data.get("linked_name", ""),
        linked_type=data.get("linked_type", "loan"),
        status=TransferStatus(data.get("status", TransferStatus.COMPLETED.value)),
        is_auto_generated=data.get("is_auto_generated", False)
    )


def _expense_from_dict(data: Dict[str, Any]) -> Expense:
    return Expense(
        id=data["id"],
        created_at=datetime.fromisoformat(data["created_at"]),
        updated_at=datetime.fromisoformat(data["updated_at"]),
        user_id=data.get("user_id", ""),
        amount=Decimal(data["amount"]),
        date=datetime.fromisoformat(data["date"]).date(),
        category=data.get("category", ""),
        description=data.get("description", ""),
        linked_loan_id=data["linked_loan_id"],
        linked_name=data.get("linked_name", ""),
        payment_method=data.get("payment_method", "Bank Transfer"),
        linked_type=data.get("linked_type", "loan"),
        linked_sub_type=data.get("linked_sub_type", "emi"),
        principal_paid=Decimal(data.get("principal_paid") or "0"),
        interest_paid=Decimal(data.get("interest_paid") or "0"),
        is_auto_generated=data.get("is_auto_generated", False)
    )


class LedgerStore:
    """Expense and transfer tables in shared storage"""

    def __init__(self, storage: AsyncStorageInterface):
        self.storage = storage
        self.expenses_table = "expenses"
        self.transfers_table = "transfers"

    async def list_transfers(self, loan_id: str) -> List[Transfer]:
        """Every transfer linked to a loan, oldest first"""
        try:
            records = await self.storage.find(self.transfers_table, {"linked_loan_id": loan_id})
        except Exception as e:
            raise ReadError(f"Failed to read transfers for loan {loan_id}: {e}") from e
        transfers = [_transfer_from_dict(record) for record in records]
        transfers.sort(key=lambda t: (t.date, t.created_at))
        return transfers

    async def query_transfers(
        self,
        loan_id: str,
        types: Iterable[TransferType],
        year: int,
        month: int
    ) -> List[Transfer]:
        """Transfers of the given types linked to a loan and dated in year/month"""
        wanted = set(types)
        return [
            t for t in await self.list_transfers(loan_id)
            if t.type in wanted and t.date.year == year and t.date.month == month
        ]

    async def list_expenses(self, loan_id: str) -> List[Expense]:
        try:
            records = await self.storage.find(self.expenses_table, {"linked_loan_id": loan_id})
        except Exception as e:
            raise ReadError(f"Failed to read expenses for loan {loan_id}: {e}") from e
        return [_expense_from_dict(record) for record in records]

    async def append_expense(self, expense: Expense) -> str:
        try:
            await self.storage.save(self.expenses_table, expense.id, expense.to_dict())
        except Exception as e:
            raise WriteError(f"Failed to record expense for loan {expense.linked_loan_id}: {e}") from e
        return expense.id

    async def append_transfer(self, transfer: Transfer) -> str:
        try:
            await self.storage.save(self.transfers_table, transfer.id, transfer.to_dict())
        except Exception as e:
            raise WriteError(f"Failed to record transfer for loan {transfer.linked_loan_id}: {e}") from e
        return transfer.id
