"""
Cache-Related Exceptions

Raised by cache backends. DegradableCache absorbs all of them; they never
reach application callers.

Author: Platform Team
Date: 2025-12-08
"""

from ledger_resilience.core.exceptions.base import LedgerResilienceError


class CacheError(LedgerResilienceError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the cache backend (Redis).

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Malformed REDIS_URL
    """
    pass
