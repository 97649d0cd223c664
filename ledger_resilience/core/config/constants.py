"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across the
resilience and event-delivery core.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for key prefixes, header names and job names
- Type-safe enums for state management

Author: Platform Team
Date: 2025-12-05
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the `stage` field of structured log events.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    - SEQUENCE: Numeric order or alphabetic prefix for cross-cutting concerns
    - DESCRIPTIVE_NAME: Uppercase description with underscores

    Examples:
        stage="2.0_CACHE_LOOKUP"
        stage="CB_CIRCUIT_BREAKER"
    """

    # Request / event lifecycle
    INITIALIZATION = "0.0_INITIALIZATION"
    RATE_LIMITING = "1.0_RATE_LIMITING"
    CACHE_LOOKUP = "2.0_CACHE_LOOKUP"
    EVENT_DISPATCH = "3.0_EVENT_DISPATCH"
    WEBHOOK_DELIVERY = "4.0_WEBHOOK_DELIVERY"
    RETRY_SCHEDULING = "5.0_RETRY_SCHEDULING"
    CLEANUP = "6.0_CLEANUP"

    # Cross-cutting concerns
    CIRCUIT_BREAKER = "CB_CIRCUIT_BREAKER"
    QUEUE = "Q_JOB_QUEUE"
    WORKER = "W_DELIVERY_WORKER"
    METRICS = "M_METRICS_COLLECTION"


# ============================================================================
# Circuit Breaker States
# ============================================================================


class CircuitState(str, Enum):
    """
    Circuit breaker states.

    CLOSED: Normal operation, requests allowed
    OPEN: Failing fast, requests blocked
    HALF_OPEN: Probing recovery, requests allowed and watched
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


# ============================================================================
# Cache Tiers
# ============================================================================


class CacheTier(str, Enum):
    """
    Where a cache read was served from.

    BACKEND: Durable shared store (Redis)
    FALLBACK: In-process bounded LRU store
    """

    BACKEND = "backend"
    FALLBACK = "fallback"


# ============================================================================
# Webhook Delivery Status
# ============================================================================


class DeliveryStatus(str, Enum):
    """
    Lifecycle of one delivery row.

    SUCCESS and FAILED are terminal.
    """

    PENDING = "pending"
    SUCCESS = "success"
    RETRYING = "retrying"
    FAILED = "failed"


# ============================================================================
# Queue Job Names
# ============================================================================


class JobName(str, Enum):
    """Job names understood by the delivery worker."""

    WEBHOOK_DISPATCH = "webhook.dispatch"
    WEBHOOK_DELIVER = "webhook.deliver"
    AGGREGATION_UPDATE_MONTHLY = "aggregation.updateMonthly"


# ============================================================================
# Circuit Identifiers
# ============================================================================

CACHE_BACKEND_CIRCUIT = "cache-backend"
WEBHOOK_CIRCUIT_PREFIX = "webhook"

# ============================================================================
# Redis Key Prefixes
# ============================================================================

REDIS_KEY_RATE_LIMIT = "ratelimit"
REDIS_KEY_QUEUE = "jobs"

# ============================================================================
# Job Queue
# ============================================================================

DEAD_LETTER_MAX = 1000

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_CORRELATION_ID = "X-Request-ID"
HEADER_USER_ID = "X-User-ID"
HEADER_RATE_LIMIT = "X-RateLimit-Limit"
HEADER_RATE_REMAINING = "X-RateLimit-Remaining"
HEADER_RATE_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"

HEADER_WEBHOOK_SIGNATURE = "X-Webhook-Signature"
HEADER_WEBHOOK_TIMESTAMP = "X-Webhook-Timestamp"
HEADER_WEBHOOK_ID = "X-Webhook-Id"
HEADER_WEBHOOK_EVENT = "X-Webhook-Event"

# ============================================================================
# Webhook Delivery
# ============================================================================

SIGNATURE_PREFIX = "sha256="
WEBHOOK_SECRET_PREFIX = "whsec_"
EVENT_ID_PREFIX = "evt_"
TRUNCATION_MARKER = "... (truncated)"
