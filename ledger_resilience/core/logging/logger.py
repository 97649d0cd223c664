#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging for the resilience core with:
- Correlation ID propagation for request and job tracing
- Stage identifiers for execution flow
- JSON formatting for log aggregation
- Automatic redaction of webhook secrets, API keys and signatures

Architectural Decision: structlog over stdlib logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation
- Async-safe context via contextvars

Author: Platform Team
Date: 2025-12-05
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from ledger_resilience.core.config.settings import get_settings

# Context variable for the correlation ID (request or job scoped)
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_SECRET_PATTERNS = (
    (re.compile(r"\bwhsec_[a-fA-F0-9]+\b"), "whsec_[REDACTED]"),
    (re.compile(r"\bob_(live|test)_[A-Za-z0-9]+\b"), "ob_[REDACTED]"),
    (re.compile(r"\bsha256=[a-fA-F0-9]{16,}\b"), "sha256=[REDACTED]"),
    (re.compile(r"\b[Bb]earer\s+[A-Za-z0-9._~+/=-]+"), "Bearer [REDACTED]"),
)


def add_correlation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add correlation ID to log event from context variable.

    STAGE-L.1: Correlation ID injection
    """
    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact credentials from log messages.

    STAGE-L.3: Secret redaction

    Patterns redacted:
    - Webhook signing secrets (whsec_...)
    - API keys (ob_live_..., ob_test_...)
    - HMAC signatures (sha256=...)
    - Bearer tokens
    """
    message = event_dict.get("event", "")

    if isinstance(message, str):
        for pattern, replacement in _SECRET_PATTERNS:
            message = pattern.sub(replacement, message)
        event_dict["event"] = message

    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Upper-case the log level name.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value", stage=Stage.CACHE_LOOKUP)
    """
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str) -> None:
    """
    Set correlation ID in context for the current request or job.

    STAGE-1.1: Correlation context initialization
    """
    correlation_id_ctx.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get current correlation ID from context."""
    return correlation_id_ctx.get()


def clear_correlation_id() -> None:
    """
    Clear correlation ID from context.

    STAGE-6: Correlation context cleanup
    """
    correlation_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Args:
        logger: Logger instance
        stage: Stage identifier (e.g., Stage.WEBHOOK_DELIVERY)
        message: Log message
        level: Log level (debug, info, warning, error, critical)
        **kwargs: Additional fields to log

    Usage:
        log_stage(logger, Stage.CACHE_LOOKUP, "Fallback hit", cache_key="dashboard:stats:u1")
    """
    log_func = getattr(logger, level.lower())
    stage_value = stage.value if hasattr(stage, "value") else stage
    log_func(message, stage=stage_value, **kwargs)
