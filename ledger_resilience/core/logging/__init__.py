"""Structured logging."""

from ledger_resilience.core.logging.logger import (
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_stage,
    set_correlation_id,
    setup_logging,
)

__all__ = [
    "clear_correlation_id",
    "get_correlation_id",
    "get_logger",
    "log_stage",
    "set_correlation_id",
    "setup_logging",
]
