"""
Resilience Module

Components:
- circuit_breaker: In-process circuit breaker registry
- rate_limiter: Sliding-log rate limiter with per-process fallback
"""

from ledger_resilience.core.resilience.circuit_breaker import (
    CACHE_BACKEND_CIRCUIT_CONFIG,
    DEFAULT_CIRCUIT_CONFIG,
    WEBHOOK_CIRCUIT_CONFIG,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitCheck,
    CircuitResult,
    CircuitSnapshot,
)
from ledger_resilience.core.resilience.rate_limiter import RateLimiter, RateLimitResult

__all__ = [
    "CACHE_BACKEND_CIRCUIT_CONFIG",
    "DEFAULT_CIRCUIT_CONFIG",
    "WEBHOOK_CIRCUIT_CONFIG",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitCheck",
    "CircuitResult",
    "CircuitSnapshot",
    "RateLimitResult",
    "RateLimiter",
]
