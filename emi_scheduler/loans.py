"""
Loan Module

Loan records as seen by the scheduler, and the repository that reads active
loans and applies partial updates to them. The repository is the boundary
where loosely shaped loan documents are normalized into one canonical Loan.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import logging
import uuid

from .storage import AsyncStorageInterface, StorageRecord
from .exceptions import NotFoundError, ReadError, ResolutionError, WriteError


logger = logging.getLogger(__name__)

# Alternate names a due day has been stored under, most specific first
DUE_DAY_KEYS = ("due_day", "emi_date", "emi_day", "emiDate", "emiDay")


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"
    CLOSED = "closed"   # Terminal: every installment paid or balance cleared


@dataclass
class Loan(StorageRecord):
    """Installment loan owned by a user"""
    user_id: str
    name: str
    lender: str
    outstanding_amount: Decimal
    interest_rate: Decimal          # Annual percentage, e.g. 12 for 12%
    emi_amount: Decimal
    tenure: int                     # Total number of installments
    emis_paid: int = 0
    due_day: Optional[int] = None
    start_date: Optional[date] = None
    status: LoanStatus = LoanStatus.ACTIVE
    last_payment_date: Optional[date] = None

    @property
    def is_closed(self) -> bool:
        return self.status == LoanStatus.CLOSED

    @property
    def remaining_emis(self) -> int:
        return max(0, self.tenure - self.emis_paid)

    @classmethod
    def create(cls, user_id: str, name: str, emi_amount, tenure: int, outstanding_amount,
               interest_rate, lender: str = "", **kwargs) -> 'Loan':
        """Build a new active loan with a generated id"""
        now = datetime.now(timezone.utc)
        return cls(
            id=kwargs.pop("id", None) or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            name=name,
            lender=lender,
            outstanding_amount=Decimal(str(outstanding_amount)),
            interest_rate=Decimal(str(interest_rate)),
            emi_amount=Decimal(str(emi_amount)),
            tenure=tenure,
            **kwargs
        )


def parse_due_day(value: Any) -> int:
    """Parse a stored due day into an int in 1..31"""
    try:
        day = int(str(value).strip())
    except (TypeError, ValueError) as e:
        raise ResolutionError(f"Due day {value!r} is not a number") from e
    if not 1 <= day <= 31:
        raise ResolutionError(f"Due day {day} is outside 1-31")
    return day


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal('0')
    except InvalidOperation:
        return Decimal('0')


def _int(value: Any) -> int:
    try:
        return int(Decimal(str(value))) if value not in (None, "") else 0
    except (InvalidOperation, ValueError):
        return 0


def _optional_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def loan_from_dict(data: Dict[str, Any]) -> Loan:
    """Normalize a stored loan document into a Loan"""
    due_day = None
    for key in DUE_DAY_KEYS:
        if data.get(key) not in (None, ""):
            try:
                due_day = parse_due_day(data[key])
            except ResolutionError as e:
                logger.warning(f"Ignoring due day on loan {data.get('id')}: {e}")
            break

    try:
        start_date = _optional_date(data.get("start_date"))
    except ValueError:
        logger.warning(f"Ignoring unparseable start date on loan {data.get('id')}")
        start_date = None

    now = datetime.now(timezone.utc)
    return Loan(
        id=data["id"],
        created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else now,
        updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else now,
        user_id=data.get("user_id", ""),
        name=data.get("name") or data.get("loan_name") or "",
        lender=data.get("lender") or "",
        outstanding_amount=_decimal(data.get("outstanding_amount")),
        interest_rate=_decimal(data.get("interest_rate")),
        emi_amount=_decimal(data.get("emi_amount")),
        tenure=_int(data.get("tenure")),
        emis_paid=_int(data.get("emis_paid")),
        due_day=due_day,
        start_date=start_date,
        status=LoanStatus(data.get("status") or LoanStatus.ACTIVE.value),
        last_payment_date=_optional_date(data.get("last_payment_date"))
    )


class LoanRepository:
    """Reads and updates loan records in shared storage"""

    def __init__(self, storage: AsyncStorageInterface, table: str = "loans"):
        self.storage = storage
        self.table = table

    async def add(self, loan: Loan) -> Loan:
        """Store a loan record"""
        try:
            await self.storage.save(self.table, loan.id, loan.to_dict())
        except Exception as e:
            raise WriteError(f"Failed to save loan {loan.id}: {e}") from e
        return loan

    async def get(self, loan_id: str) -> Loan:
        """Load the latest stored version of a loan"""
        try:
            data = await self.storage.load(self.table, loan_id)
        except Exception as e:
            raise ReadError(f"Failed to read loan {loan_id}: {e}") from e
        if data is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan_from_dict(data)

    async def list_active(self, user_id: str) -> List[Loan]:
        """
        All of a user's loans that are not closed.

        Records that cannot be normalized into a Loan are logged and left out
        so the remaining loans are still returned.
        """
        try:
            records = await self.storage.find(self.table, {"user_id": user_id})
        except Exception as e:
            raise ReadError(f"Failed to list loans for user {user_id}: {e}") from e

        loans = []
        for record in records:
            try:
                loan = loan_from_dict(record)
            except (KeyError, TypeError, ValueError, ArithmeticError) as e:
                logger.error(f"Skipping malformed loan record {record.get('id')}: {e}")
                continue
            if loan.status != LoanStatus.CLOSED:
                loans.append(loan)
        return loans

    async def update(self, loan_id: str, fields: Dict[str, Any]) -> Loan:
        """Merge fields onto the latest stored record"""
        try:
            existing = await self.storage.load(self.table, loan_id)
        except Exception as e:
            raise ReadError(f"Failed to read loan {loan_id}: {e}") from e
        if existing is None:
            raise NotFoundError(f"Loan {loan_id} not found")

        existing.update(fields)
        existing["updated_at"] = datetime.now(timezone.utc)
        try:
            await self.storage.save(self.table, loan_id, existing)
        except Exception as e:
            raise WriteError(f"Failed to update loan {loan_id}: {e}") from e
        return await self.get(loan_id)
