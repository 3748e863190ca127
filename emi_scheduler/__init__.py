"""
EMI Scheduler

Once-per-day detection and recording of installment loan payments with
Decimal amortization, ledger-derived idempotency and deduplicated reminders.
"""

__version__ = "1.0.0"
