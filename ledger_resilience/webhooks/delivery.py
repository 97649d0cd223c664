#!/usr/bin/env python3
"""
Webhook Delivery

Architecture:
    DeliveryAttempter (single delivery path)
        ├── CircuitBreakerRegistry ("webhook:{webhook_id}" per endpoint)
        ├── WebhookSender (signed httpx POST with timeout)
        ├── RetryPolicy (exponential back-off, capped, optional jitter)
        ├── WebhookStore (delivery state transitions)
        └── JobProducer (webhook.deliver retry jobs)

Both the dispatcher's immediate attempt and queued retries go through
`DeliveryAttempter`, so the breaker key, the back-off and the state machine
are identical on every path.

State machine for one attempt:
    webhook inactive      -> failed ("Webhook is inactive"), no HTTP call
    2xx                   -> success (terminal)
    non-2xx / timeout /
    network / circuit open -> attempts += 1
                             attempts <  max_attempts: retrying, next_retry_at set,
                                                       webhook.deliver job enqueued
                             attempts >= max_attempts: failed (terminal),
                                                       next_retry_at cleared

Author: Platform Team
Date: 2025-12-11
"""

import asyncio
import random
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx
import orjson

from ledger_resilience.core.config.constants import (
    TRUNCATION_MARKER,
    WEBHOOK_CIRCUIT_PREFIX,
    DeliveryStatus,
    Stage,
)
from ledger_resilience.core.exceptions import QueueError, WebhookDeliveryError
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.core.resilience.circuit_breaker import (
    WEBHOOK_CIRCUIT_CONFIG,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitResult,
)
from ledger_resilience.infrastructure.message_queue.producer import JobProducer
from ledger_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from ledger_resilience.webhooks.models import Webhook, WebhookDelivery, utcnow
from ledger_resilience.webhooks.signing import build_headers
from ledger_resilience.webhooks.store import WebhookStore
from ledger_resilience.webhooks.url_validation import check_webhook_url

logger = get_logger(__name__)

INACTIVE_WEBHOOK_MESSAGE = "Webhook is inactive"


def webhook_circuit_id(webhook_id: str) -> str:
    return f"{WEBHOOK_CIRCUIT_PREFIX}:{webhook_id}"


def truncate_body(text: str | None, limit: int) -> str | None:
    if text is None or len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


# =============================================================================
# LAYER 1: RETRY POLICY
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential back-off: base * 2^(attempts-1), capped at max_delay_seconds.

    With base 60s and cap 3600s the gaps are 60, 120, 240, 480, ... seconds.
    `jitter` spreads each delay by +/- that ratio so endpoints recovering from
    an outage are not hit by every retry at once.
    """

    max_attempts: int = 5
    base_delay_seconds: float = 60
    max_delay_seconds: float = 3600
    jitter: float = 0.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        cfg = settings.webhooks
        return cls(
            max_attempts=cfg.WEBHOOK_MAX_ATTEMPTS,
            base_delay_seconds=cfg.WEBHOOK_RETRY_BASE_DELAY_SECONDS,
            max_delay_seconds=cfg.WEBHOOK_RETRY_MAX_DELAY_SECONDS,
            jitter=cfg.WEBHOOK_RETRY_JITTER,
        )

    def delay_for(self, attempts: int, rng: Callable[[], float] = random.random) -> float:
        """Delay before the next attempt, given the attempts already made (>= 1)."""
        delay = min(self.base_delay_seconds * 2 ** max(0, attempts - 1), self.max_delay_seconds)
        if self.jitter:
            delay += delay * self.jitter * (rng() * 2 - 1)
        return delay

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts


# =============================================================================
# LAYER 2: HTTP SENDER
# =============================================================================


@dataclass(frozen=True)
class SendResult:
    status_code: int
    response_body: str | None
    response_time_ms: int


class WebhookSender:
    """
    Signed POST of one event payload to one webhook URL.

    STAGE-4.1: HTTP delivery

    Returns a SendResult for 2xx responses and raises WebhookDeliveryError for
    everything else (non-2xx, timeout, network error, URL rejected), so the
    circuit breaker sees every failure as an exception.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout_seconds: float = 30.0,
        response_body_limit: int = 2000,
        user_agent: str = "LedgerWebhooks/1.0",
        require_https: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._timeout = timeout_seconds
        self._body_limit = response_body_limit
        self._user_agent = user_agent
        self._require_https = require_https
        self._clock = clock

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings) -> "WebhookSender":
        cfg = settings.webhooks
        return cls(
            client,
            timeout_seconds=cfg.WEBHOOK_TIMEOUT_SECONDS,
            response_body_limit=cfg.WEBHOOK_RESPONSE_BODY_LIMIT,
            user_agent=cfg.WEBHOOK_USER_AGENT,
            require_https=settings.is_production,
        )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)

    async def send(self, webhook: Webhook, payload: dict) -> SendResult:
        started = self._clock()

        reason = check_webhook_url(webhook.url, require_https=self._require_https)
        if reason is not None:
            raise WebhookDeliveryError(
                f"URL validation failed: {reason}",
                details={"webhook_id": webhook.id, "response_time_ms": 0},
            )

        body = orjson.dumps(payload)
        headers = build_headers(
            body,
            webhook.secret,
            event_id=str(payload.get("id", "")),
            event=str(payload.get("type", "")),
            user_agent=self._user_agent,
        )

        try:
            response = await self._client.post(
                webhook.url, content=body, headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as e:
            raise WebhookDeliveryError(
                f"Timeout after {int(self._timeout * 1000)}ms",
                details={"webhook_id": webhook.id, "response_time_ms": self._elapsed_ms(started)},
            ) from e
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(
                str(e) or e.__class__.__name__,
                details={"webhook_id": webhook.id, "response_time_ms": self._elapsed_ms(started)},
            ) from e

        elapsed_ms = self._elapsed_ms(started)
        response_body = truncate_body(response.text, self._body_limit)

        if not 200 <= response.status_code < 300:
            raise WebhookDeliveryError(
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response_body,
                details={"webhook_id": webhook.id, "response_time_ms": elapsed_ms},
            )

        return SendResult(
            status_code=response.status_code,
            response_body=response_body,
            response_time_ms=elapsed_ms,
        )


# =============================================================================
# LAYER 3: ATTEMPTER
# =============================================================================


class DeliveryAttempter:
    """
    Runs one delivery attempt and applies its outcome to the delivery record.

    STAGE-4: Webhook delivery

    Attempts for the same delivery id are serialized by a per-delivery lock,
    so an immediate attempt and a queued retry never overlap.
    """

    def __init__(
        self,
        store: WebhookStore,
        sender: WebhookSender,
        breaker: CircuitBreakerRegistry,
        producer: JobProducer,
        retry_policy: RetryPolicy | None = None,
        circuit_config: CircuitBreakerConfig = WEBHOOK_CIRCUIT_CONFIG,
        clock: Callable[[], datetime] = utcnow,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._sender = sender
        self._breaker = breaker
        self._producer = producer
        self._policy = retry_policy or RetryPolicy()
        self._circuit_config = circuit_config
        self._clock = clock
        self._metrics = metrics or get_metrics_collector()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    def _lock_for(self, delivery_id: str) -> asyncio.Lock:
        lock = self._locks.get(delivery_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[delivery_id] = lock
        return lock

    async def attempt(self, delivery: WebhookDelivery, webhook: Webhook | None) -> WebhookDelivery:
        """Attempt a delivery the caller already holds (the dispatcher's immediate try)."""
        async with self._lock_for(delivery.id):
            return await self._attempt(delivery, webhook)

    async def attempt_scheduled(self, delivery_id: str, expected_attempts: int) -> WebhookDelivery | None:
        """
        Attempt a delivery named by a retry job.

        Returns None when the job is stale: the delivery is gone, already
        terminal, or has moved past the attempt count the job was scheduled for.
        """
        async with self._lock_for(delivery_id):
            delivery = await self._store.get_delivery(delivery_id)
            if delivery is None or not delivery.awaiting_attempt:
                log_stage(
                    logger, Stage.WEBHOOK_DELIVERY, "Skipping retry for settled delivery",
                    level="debug", delivery_id=delivery_id,
                )
                return None
            if delivery.attempts != expected_attempts:
                log_stage(
                    logger, Stage.WEBHOOK_DELIVERY, "Skipping stale retry job",
                    level="debug", delivery_id=delivery_id,
                    job_attempt=expected_attempts, delivery_attempts=delivery.attempts,
                )
                return None

            webhook = await self._store.get_webhook(delivery.webhook_id)
            return await self._attempt(delivery, webhook)

    async def _attempt(self, delivery: WebhookDelivery, webhook: Webhook | None) -> WebhookDelivery:
        if delivery.is_terminal:
            return delivery

        if webhook is None or not webhook.is_active:
            self._mark_inactive(delivery)
            self._metrics.record_delivery_attempt("inactive")
            return await self._store.update_delivery(delivery)

        started = time.monotonic()
        outcome = await self._breaker.execute_with_circuit_breaker(
            webhook_circuit_id(webhook.id),
            lambda: self._sender.send(webhook, delivery.payload),
            self._circuit_config,
        )

        if outcome.success:
            self._mark_success(delivery, outcome.result)
            self._metrics.record_delivery_attempt("success", time.monotonic() - started)
        else:
            self._mark_failure(delivery, outcome)
            self._metrics.record_delivery_attempt(
                "circuit_open" if outcome.circuit_open else "failure",
                None if outcome.circuit_open else time.monotonic() - started,
            )

        saved = await self._store.update_delivery(delivery)
        if saved.status == DeliveryStatus.RETRYING:
            await self._schedule_retry(saved)
        return saved

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _mark_inactive(self, delivery: WebhookDelivery) -> None:
        delivery.status = DeliveryStatus.FAILED
        delivery.error_message = INACTIVE_WEBHOOK_MESSAGE
        delivery.failed_at = self._clock()
        delivery.next_retry_at = None
        log_stage(
            logger, Stage.WEBHOOK_DELIVERY, "Delivery dropped for inactive webhook",
            level="warning", delivery_id=delivery.id, webhook_id=delivery.webhook_id,
        )

    def _mark_success(self, delivery: WebhookDelivery, result: SendResult) -> None:
        delivery.attempts += 1
        delivery.status = DeliveryStatus.SUCCESS
        delivery.status_code = result.status_code
        delivery.response_body = result.response_body
        delivery.response_time_ms = result.response_time_ms
        delivery.delivered_at = self._clock()
        delivery.next_retry_at = None
        delivery.error_message = None
        log_stage(
            logger, Stage.WEBHOOK_DELIVERY, "Webhook delivered",
            delivery_id=delivery.id, webhook_id=delivery.webhook_id,
            status_code=result.status_code, attempts=delivery.attempts,
        )

    def _mark_failure(self, delivery: WebhookDelivery, outcome: CircuitResult) -> None:
        delivery.attempts += 1

        if outcome.circuit_open:
            delivery.error_message = f"Circuit breaker open: {outcome.error}"
        else:
            delivery.error_message = outcome.error
            error = outcome.exception
            if isinstance(error, WebhookDeliveryError):
                delivery.status_code = error.status_code
                delivery.response_body = error.response_body
                delivery.response_time_ms = error.details.get("response_time_ms")

        now = self._clock()
        if self._policy.exhausted(delivery.attempts):
            delivery.status = DeliveryStatus.FAILED
            delivery.failed_at = now
            delivery.next_retry_at = None
            log_stage(
                logger, Stage.WEBHOOK_DELIVERY, "Webhook delivery failed permanently",
                level="warning", delivery_id=delivery.id, webhook_id=delivery.webhook_id,
                attempts=delivery.attempts, error=delivery.error_message,
            )
            return

        delivery.status = DeliveryStatus.RETRYING
        delivery.next_retry_at = now + timedelta(seconds=self._policy.delay_for(delivery.attempts))
        log_stage(
            logger, Stage.WEBHOOK_DELIVERY, "Webhook delivery failed, will retry",
            level="info", delivery_id=delivery.id, webhook_id=delivery.webhook_id,
            attempts=delivery.attempts, error=delivery.error_message,
            next_retry_at=delivery.next_retry_at.isoformat(),
        )

    async def _schedule_retry(self, delivery: WebhookDelivery) -> None:
        delay = (delivery.next_retry_at - self._clock()).total_seconds()
        try:
            await self._producer.schedule_delivery_retry(
                delivery_id=delivery.id,
                webhook_id=delivery.webhook_id,
                user_id=delivery.user_id,
                attempt=delivery.attempts,
                delay_seconds=delay,
            )
        except QueueError as e:
            # The retry sweep re-enqueues due deliveries from the store.
            log_stage(
                logger, Stage.RETRY_SCHEDULING, "Retry job not enqueued",
                level="warning", delivery_id=delivery.id, error=e.message,
            )
