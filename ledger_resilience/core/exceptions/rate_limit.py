"""
Rate Limiting Exceptions

Author: Platform Team
Date: 2025-12-08
"""

from ledger_resilience.core.exceptions.base import LedgerResilienceError


class RateLimitError(LedgerResilienceError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when a caller exceeds its rate limit.

    The HTTP layer turns this into a 429 carrying:
    - X-RateLimit-Limit: Maximum requests allowed
    - X-RateLimit-Remaining: Requests remaining
    - X-RateLimit-Reset: Window end (Unix timestamp, seconds)
    - Retry-After: Seconds to wait
    """

    def __init__(
        self,
        message: str,
        limit: int,
        remaining: int,
        reset_at: int,
        retry_after: int,
        correlation_id: str | None = None,
    ):
        super().__init__(
            message,
            correlation_id=correlation_id,
            details={
                "limit": limit,
                "remaining": remaining,
                "reset_at": reset_at,
                "retry_after": retry_after,
            },
        )
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        self.retry_after = retry_after
