"""
Rate Limit Middleware

Applies a RateLimitPolicy to every request, chosen by path prefix, and
keyed by `{path}:{identifier}` so limits are per endpoint and per caller.

Identifier resolution (first match wins):
    1. API key (`Bearer ob_...` or `X-API-Key: ob_...`)  -> apikey:<sha256[:16]>   (API v1 policies)
    2. Bearer token                                        -> user:<sha256[:16]>
    3. Client IP                                           -> ip:<address>

Forwarding headers (X-Forwarded-For, CF-Connecting-IP, X-Real-IP) are only
honoured when the direct peer is a trusted proxy; every IP is format-checked.

Every limited response carries X-RateLimit-Limit / -Remaining / -Reset; a
rejected one is a 429 with Retry-After and a JSON error body.

Author: Platform Team
Date: 2025-12-14
"""

import hashlib
import ipaddress
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ledger_resilience.core.config.constants import (
    HEADER_RATE_LIMIT,
    HEADER_RATE_REMAINING,
    HEADER_RATE_RESET,
    HEADER_RETRY_AFTER,
    Stage,
)
from ledger_resilience.core.exceptions import RateLimitExceededError
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.core.resilience.rate_limiter import RateLimiter, RateLimitResult

logger = get_logger(__name__)

API_KEY_PREFIX = "ob_"
READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    limit: int
    window_seconds: int = 60
    api_key_aware: bool = False


GENERAL = RateLimitPolicy("general", 100)
AUTH = RateLimitPolicy("auth", 10)
AI = RateLimitPolicy("ai", 20)
HEAVY = RateLimitPolicy("heavy", 10)
STRICT = RateLimitPolicy("strict", 5)
API_V1_READ = RateLimitPolicy("api_v1_read", 1000, api_key_aware=True)
API_V1_WRITE = RateLimitPolicy("api_v1_write", 100, api_key_aware=True)
WEBHOOK_MANAGEMENT = RateLimitPolicy("webhook", 50, api_key_aware=True)


@dataclass(frozen=True)
class MethodBasedPolicy:
    """Read methods get `read`, mutations get `write`."""

    read: RateLimitPolicy
    write: RateLimitPolicy

    def for_method(self, method: str) -> RateLimitPolicy:
        return self.read if method.upper() in READ_METHODS else self.write


API_V1 = MethodBasedPolicy(API_V1_READ, API_V1_WRITE)

# Longest prefix first; None means "not limited".
DEFAULT_RULES: tuple[tuple[str, RateLimitPolicy | MethodBasedPolicy | None], ...] = (
    ("/health", None),
    ("/metrics", None),
    ("/api/v1/webhooks", WEBHOOK_MANAGEMENT),
    ("/api/v1", API_V1),
    ("/webhooks", WEBHOOK_MANAGEMENT),
    ("/auth", AUTH),
    ("/ai", AI),
)


# =============================================================================
# Caller identification
# =============================================================================


def is_valid_ip(value: str | None) -> bool:
    if not value:
        return False
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True


def _short_hash(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:16]


def client_ip(request: Request, trusted_proxies: Iterable[str]) -> str:
    peer = request.client.host if request.client else None

    if peer is None or peer in set(trusted_proxies):
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if is_valid_ip(first):
                return first
        for header in ("cf-connecting-ip", "x-real-ip"):
            candidate = request.headers.get(header)
            if is_valid_ip(candidate):
                return candidate.strip()

    if is_valid_ip(peer):
        return peer
    return "unknown"


def caller_identifier(
    request: Request, trusted_proxies: Iterable[str], api_key_aware: bool = False
) -> str:
    authorization = request.headers.get("authorization", "")
    token = authorization[7:].strip() if authorization.startswith("Bearer ") else ""

    if api_key_aware:
        if token.startswith(API_KEY_PREFIX):
            return f"apikey:{_short_hash(token)}"
        header_key = request.headers.get("x-api-key", "")
        if header_key.startswith(API_KEY_PREFIX):
            return f"apikey:{_short_hash(header_key)}"

    if token:
        return f"user:{_short_hash(token)}"

    return f"ip:{client_ip(request, trusted_proxies)}"


# =============================================================================
# Responses
# =============================================================================


def apply_rate_limit_headers(response: Response, result: RateLimitResult) -> None:
    response.headers[HEADER_RATE_LIMIT] = str(result.limit)
    response.headers[HEADER_RATE_REMAINING] = str(result.remaining)
    response.headers[HEADER_RATE_RESET] = str(result.reset_at)


def rate_limited_response(error: RateLimitExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too Many Requests",
            "message": "Rate limit exceeded. Please try again later.",
            "retryAfter": error.retry_after,
        },
        headers={
            HEADER_RATE_LIMIT: str(error.limit),
            HEADER_RATE_REMAINING: str(error.remaining),
            HEADER_RATE_RESET: str(error.reset_at),
            HEADER_RETRY_AFTER: str(error.retry_after),
        },
    )


# =============================================================================
# Middleware
# =============================================================================


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    STAGE-1: Rate limiting

    The limiter is read from `request.app.state.container`, which the lifespan
    sets; before startup completes requests pass through unlimited.
    """

    def __init__(
        self,
        app,
        rules: Iterable[tuple[str, RateLimitPolicy | MethodBasedPolicy | None]] = DEFAULT_RULES,
        default_policy: RateLimitPolicy | None = GENERAL,
        trusted_proxies: Iterable[str] = ("127.0.0.1", "::1"),
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self._rules = sorted(rules, key=lambda rule: len(rule[0]), reverse=True)
        self._default_policy = default_policy
        self._trusted_proxies = frozenset(trusted_proxies)
        self._enabled = enabled
        self._clock = clock

    def policy_for(self, path: str, method: str) -> RateLimitPolicy | None:
        for prefix, policy in self._rules:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                if isinstance(policy, MethodBasedPolicy):
                    return policy.for_method(method)
                return policy
        return self._default_policy

    def _limiter(self, request: Request) -> RateLimiter | None:
        container = getattr(request.app.state, "container", None)
        return container.rate_limiter if container is not None else None

    async def dispatch(self, request: Request, call_next) -> Response:
        limiter = self._limiter(request) if self._enabled else None
        policy = self.policy_for(request.url.path, request.method) if limiter else None
        if policy is None:
            return await call_next(request)

        identifier = caller_identifier(request, self._trusted_proxies, policy.api_key_aware)
        result = await limiter.check_rate_limit(
            f"{request.url.path}:{identifier}", policy.limit, policy.window_seconds
        )

        if not result.allowed:
            error = RateLimitExceededError(
                "Rate limit exceeded",
                limit=result.limit,
                remaining=result.remaining,
                reset_at=result.reset_at,
                retry_after=max(1, result.retry_after(self._clock())),
            )
            request.app.state.container.metrics.record_rate_limit_exceeded(policy.name)
            log_stage(
                logger, Stage.RATE_LIMITING, "Rate limit exceeded",
                level="warning", policy=policy.name, path=request.url.path,
                identifier=identifier, retry_after=error.retry_after,
            )
            return rate_limited_response(error)

        response = await call_next(request)
        apply_rate_limit_headers(response, result)
        return response
