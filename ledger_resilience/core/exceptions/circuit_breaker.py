"""
Circuit Breaker Exceptions

Author: Platform Team
Date: 2025-12-08
"""

from ledger_resilience.core.exceptions.base import LedgerResilienceError


class CircuitBreakerError(LedgerResilienceError):
    """Base exception for circuit breaker errors."""
    pass


class CircuitBreakerOpenError(CircuitBreakerError):
    """
    Raised when the circuit is open (fail fast).

    The breaker refused to attempt the call at all. This is distinct from the
    dependency itself failing, so callers and metrics can tell the two apart.
    """
    pass
