"""
Correlation ID Middleware

Reads X-Request-ID (or generates one), binds it to the logging context for
the request and echoes it on the response.
"""

import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ledger_resilience.core.config.constants import HEADER_CORRELATION_ID
from ledger_resilience.core.logging.logger import clear_correlation_id, set_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(HEADER_CORRELATION_ID) or uuid.uuid4().hex
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[HEADER_CORRELATION_ID] = correlation_id
        return response
