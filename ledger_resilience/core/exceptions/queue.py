"""
Job Queue Exceptions

Author: Platform Team
Date: 2025-12-08
"""

from ledger_resilience.core.exceptions.base import LedgerResilienceError


class QueueError(LedgerResilienceError):
    """Base exception for job queue errors."""
    pass


class JobValidationError(QueueError):
    """
    Raised when a job payload does not match its contract.

    Malformed jobs are never retried; the worker moves them to the
    dead-letter list.
    """
    pass


class UnknownJobError(QueueError):
    """Raised when a job name has no registered handler."""
    pass
