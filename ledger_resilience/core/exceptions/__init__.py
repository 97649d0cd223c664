"""
Exception Module

Structured exception hierarchy for the resilience core, organized by theme.

Module Structure:
-----------------
- **base.py**: LedgerResilienceError base class + ConfigurationError
- **cache.py**: Cache backend exceptions
- **circuit_breaker.py**: Circuit breaker exceptions
- **rate_limit.py**: Rate limiting exceptions
- **queue.py**: Job queue exceptions
- **webhook.py**: Webhook registration and delivery exceptions

Usage:
------
```python
from ledger_resilience.core.exceptions import WebhookDeliveryError
from ledger_resilience.core.exceptions.cache import CacheConnectionError
```

Author: Platform Team
Date: 2025-12-08
"""

from ledger_resilience.core.exceptions.base import ConfigurationError, LedgerResilienceError
from ledger_resilience.core.exceptions.cache import CacheConnectionError, CacheError
from ledger_resilience.core.exceptions.circuit_breaker import (
    CircuitBreakerError,
    CircuitBreakerOpenError,
)
from ledger_resilience.core.exceptions.queue import JobValidationError, QueueError, UnknownJobError
from ledger_resilience.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError
from ledger_resilience.core.exceptions.webhook import (
    InvalidWebhookEventError,
    WebhookDeliveryError,
    WebhookError,
    WebhookLimitError,
    WebhookNotFoundError,
    WebhookUrlError,
)

__all__ = [
    "CacheConnectionError",
    "CacheError",
    "CircuitBreakerError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "InvalidWebhookEventError",
    "JobValidationError",
    "LedgerResilienceError",
    "QueueError",
    "RateLimitError",
    "RateLimitExceededError",
    "UnknownJobError",
    "WebhookDeliveryError",
    "WebhookError",
    "WebhookLimitError",
    "WebhookNotFoundError",
    "WebhookUrlError",
]
