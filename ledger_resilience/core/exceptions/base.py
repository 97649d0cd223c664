"""
Base Exception Class

This module contains ONLY the base exception class that all other exceptions inherit from.
All specialized exceptions are in their respective themed modules.

Author: Platform Team
Date: 2025-12-08
"""

from typing import Any


class LedgerResilienceError(Exception):
    """
    Base exception for all resilience-core errors.

    Attributes:
        message: Error message
        correlation_id: Request or job correlation ID (if available)
        details: Additional error details (dict)

    Example:
        raise WebhookDeliveryError(
            "Endpoint returned HTTP 503",
            correlation_id="abc-123",
            details={"webhook_id": "wh_1", "status_code": 503}
        )
    """

    def __init__(
        self, message: str, correlation_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.correlation_id = correlation_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, correlation_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }

    def with_context(self, **context) -> "LedgerResilienceError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        correlation_str = f", correlation_id='{self.correlation_id}'" if self.correlation_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{correlation_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        correlation_id: str | None = None,
        **details
    ) -> "LedgerResilienceError":
        """
        Create an error from another exception.

        Useful for wrapping third-party exceptions with additional context.

        Example:
            >>> try:
            ...     await client.post(url)
            ... except httpx.TimeoutException as e:
            ...     raise WebhookDeliveryError.from_exception(e, webhook_id="wh_1")
        """
        error_message = message or str(exc) or exc.__class__.__name__
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, correlation_id=correlation_id, details=error_details)


# Configuration exception (kept here as it's fundamental)
class ConfigurationError(LedgerResilienceError):
    """Raised when configuration is invalid or missing."""
    pass
