"""
Idempotency Guard Module

Decides whether a loan's billing cycle already has a recorded payment by
reading the shared ledger. No local flag is consulted: manual payments made
elsewhere and runs from other devices are visible only through the ledger.

Two runs that both read before either writes will both see the cycle as
unpaid. The ledger store offers no conditional write to close that window.
"""

import logging

from .ledger import LedgerStore, CYCLE_SETTLING_TYPES
from .exceptions import GuardReadError


logger = logging.getLogger(__name__)


class IdempotencyGuard:

    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger

    async def already_recorded(self, loan_id: str, year: int, month: int) -> bool:
        """True if an EMI or prepayment transfer is dated in year/month"""
        try:
            transfers = await self.ledger.query_transfers(loan_id, CYCLE_SETTLING_TYPES, year, month)
        except Exception as e:
            raise GuardReadError(
                f"Cannot confirm whether loan {loan_id} was paid for {year}-{month:02d}: {e}"
            ) from e
        if transfers:
            logger.debug(f"Loan {loan_id} has {len(transfers)} settling transfer(s) in {year}-{month:02d}")
        return bool(transfers)
