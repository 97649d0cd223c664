"""
Cache Backend Protocol

Contract every durable cache backend satisfies. The degradable cache, the
rate limiter and the health endpoint depend on this protocol only.

Architectural Decision: Protocol-based abstraction
- A Redis-bound backend and an in-memory-only (no-op) backend, selected once
  at startup instead of null-checking a client at every call site
- Facilitates testing with stub implementations

Author: Platform Team
Date: 2025-12-08
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class CacheBackend(Protocol):
    """
    Protocol for durable cache backends.

    Implementations:
    - RedisCacheBackend: Redis-backed shared store
    - NullCacheBackend: No durable store; callers use their fallbacks

    Every coroutine may raise; callers that must not fail wrap the calls in a
    circuit breaker and absorb the error.
    """

    kind: str
    available: bool

    async def get(self, key: str) -> str | None:
        """Return the stored value or None."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store `value` for `ttl_seconds`."""
        ...

    async def delete(self, key: str) -> None:
        ...

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching the glob `pattern`. Returns the count deleted."""
        ...

    async def sliding_window_hit(self, key: str, now_ms: int, window_ms: int, member: str) -> int:
        """
        Atomically prune entries older than the window, count the remainder, and
        log the current request. Returns the count observed before the insert.
        """
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...
