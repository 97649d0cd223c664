"""HTTP middleware: correlation ids, error handling and rate limiting."""

from ledger_resilience.application.api.middleware.correlation import CorrelationIdMiddleware
from ledger_resilience.application.api.middleware.error_handler import (
    ErrorHandlingMiddleware,
    register_exception_handlers,
)
from ledger_resilience.application.api.middleware.rate_limit import (
    RateLimitMiddleware,
    RateLimitPolicy,
    caller_identifier,
    client_ip,
)

__all__ = [
    "CorrelationIdMiddleware",
    "ErrorHandlingMiddleware",
    "RateLimitMiddleware",
    "RateLimitPolicy",
    "caller_identifier",
    "client_ip",
    "register_exception_handlers",
]
