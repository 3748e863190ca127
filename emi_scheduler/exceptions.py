"""Error taxonomy for the EMI scheduler."""


class SchedulerError(Exception):
    """Base exception for all scheduler errors."""


class ResolutionError(SchedulerError):
    """Raised when a loan's due-date configuration cannot be parsed."""


class ReadError(SchedulerError):
    """Raised when a collaborator store cannot be read."""


class GuardReadError(ReadError):
    """Raised when the ledger is unreachable during an idempotency check."""


class WriteError(SchedulerError):
    """Raised when a ledger or repository write fails."""


class NotFoundError(SchedulerError):
    """Raised when a referenced record does not exist."""


class GateError(SchedulerError):
    """Raised when the local day-gate store is unreadable or unwritable."""
