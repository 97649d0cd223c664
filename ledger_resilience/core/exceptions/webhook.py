"""
Webhook Exceptions

Author: Platform Team
Date: 2025-12-08
"""

from ledger_resilience.core.exceptions.base import LedgerResilienceError


class WebhookError(LedgerResilienceError):
    """Base exception for webhook errors."""
    pass


class WebhookDeliveryError(WebhookError):
    """
    Raised when one delivery attempt fails.

    Common causes:
    - Non-2xx response from the endpoint
    - Timeout or network error
    - URL no longer passes outbound validation
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        correlation_id: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, correlation_id=correlation_id, details=details)
        self.status_code = status_code
        self.response_body = response_body


class WebhookUrlError(WebhookError):
    """Raised when a webhook URL is unsafe or malformed."""
    pass


class WebhookNotFoundError(WebhookError):
    """Raised when a webhook or delivery does not exist for the caller."""
    pass


class WebhookLimitError(WebhookError):
    """Raised when a user already has the maximum number of active webhooks."""
    pass


class InvalidWebhookEventError(WebhookError):
    """Raised when an event type is not in the catalogue."""
    pass
