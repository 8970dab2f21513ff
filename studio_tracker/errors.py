# studio_tracker/errors.py
from typing import Optional


class LedgerError(Exception):
    """Base class for everything the job ledger raises on purpose."""

    status_code = 500
    outcome = "failed"

    def __init__(self, message: str, *, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class ValidationError(LedgerError):
    """Missing or malformed input. Raised before anything is written."""

    status_code = 422
    outcome = "validation_rejected"


class NotFoundError(LedgerError):
    status_code = 404


class InvalidTransition(LedgerError):
    status_code = 409
    outcome = "validation_rejected"


class PermissionDenied(LedgerError):
    status_code = 403


class AllocationConflict(LedgerError):
    """The id counter transaction kept conflicting until the retry budget ran out."""

    status_code = 503


class NotificationFailure(LedgerError):
    """Mailer rejected or timed out. Never propagated past a lifecycle operation."""

    status_code = 502
    outcome = "notification_warning"
