"""
Error Handling

Two layers:
- `register_exception_handlers`: maps domain exceptions raised by routes to
  JSON responses with a fitting status code
- `ErrorHandlingMiddleware`: last line of defence for anything unhandled;
  logs the full error and returns a generic 500
"""

import traceback
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ledger_resilience.application.api.middleware.rate_limit import rate_limited_response
from ledger_resilience.core.exceptions import (
    InvalidWebhookEventError,
    LedgerResilienceError,
    RateLimitExceededError,
    WebhookError,
    WebhookLimitError,
    WebhookNotFoundError,
    WebhookUrlError,
)
from ledger_resilience.core.logging.logger import get_correlation_id, get_logger
from ledger_resilience.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

# Most specific first.
_STATUS_BY_ERROR: tuple[tuple[type[LedgerResilienceError], int], ...] = (
    (WebhookNotFoundError, 404),
    (WebhookUrlError, 400),
    (InvalidWebhookEventError, 400),
    (WebhookLimitError, 409),
    (WebhookError, 409),
)


def status_for(error: LedgerResilienceError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


async def handle_domain_error(request: Request, exc: LedgerResilienceError) -> JSONResponse:
    if isinstance(exc, RateLimitExceededError):
        return rate_limited_response(exc)

    status = status_for(exc)
    get_metrics_collector().record_error(exc.__class__.__name__, "handled")
    if status >= 500:
        logger.error("Request failed", path=request.url.path, **exc.to_dict())

    body = {"error": exc.__class__.__name__, "message": exc.message}
    if status < 500 and exc.details:
        body["details"] = exc.details
    correlation_id = exc.correlation_id or get_correlation_id()
    if correlation_id:
        body["correlationId"] = correlation_id
    return JSONResponse(status_code=status, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerResilienceError, handle_domain_error)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, include_traceback: bool = False):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            error_type = type(e).__name__
            logger.error(
                f"Unhandled exception in request: {request.method} {request.url.path}",
                method=request.method,
                path=request.url.path,
                error_type=error_type,
                exc_info=True,
            )
            get_metrics_collector().record_error(error_type, "unhandled_exception")

            body = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred while processing your request",
            }
            if self.include_traceback:
                body["traceback"] = traceback.format_exc()
                body["detail"] = str(e)
            return JSONResponse(status_code=500, content=body)
