#!/usr/bin/env python3
"""
Application Container

Builds the object graph once per process and hands it to the FastAPI app and
the delivery worker. Every stateful component (breaker records, fallback
cache, rate windows, queue, store) is an instance owned here; nothing is a
module-level singleton, so tests build a fresh container per case.

Strategy selection happens once, in `build`:
    Redis client present  -> RedisCacheBackend + RedisJobQueue
    Redis disabled/broken -> NullCacheBackend + InMemoryJobQueue

Author: Platform Team
Date: 2025-12-14
"""

from dataclasses import dataclass, field

import httpx
import redis.asyncio as redis

from ledger_resilience.application.services.aggregation import MonthlyAggregationRefresher
from ledger_resilience.core.config.constants import Stage
from ledger_resilience.core.config.settings import Settings, get_settings
from ledger_resilience.core.logging.logger import get_logger, log_stage
from ledger_resilience.core.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from ledger_resilience.core.resilience.rate_limiter import RateLimiter
from ledger_resilience.infrastructure.cache.app_cache import AppCache
from ledger_resilience.infrastructure.cache.cache_manager import DegradableCache, FallbackStore
from ledger_resilience.infrastructure.cache.redis_client import (
    NullCacheBackend,
    RedisCacheBackend,
    build_cache_backend,
    build_redis_client,
    connect_with_retry,
)
from ledger_resilience.infrastructure.message_queue.factory import build_job_queue
from ledger_resilience.infrastructure.message_queue.jobs import AggregationUpdateJob
from ledger_resilience.infrastructure.message_queue.memory_queue import InMemoryJobQueue
from ledger_resilience.infrastructure.message_queue.producer import JobProducer
from ledger_resilience.infrastructure.message_queue.redis_queue import RedisJobQueue
from ledger_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)
from ledger_resilience.webhooks.delivery import DeliveryAttempter, RetryPolicy, WebhookSender
from ledger_resilience.webhooks.dispatcher import EventDispatcher
from ledger_resilience.webhooks.integration import WebhookTrigger
from ledger_resilience.webhooks.service import WebhookService
from ledger_resilience.webhooks.store import InMemoryWebhookStore, WebhookStore
from ledger_resilience.webhooks.worker import DeliveryWorker

logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    metrics: MetricsCollector
    redis_client: redis.Redis | None
    breaker: CircuitBreakerRegistry
    cache_backend: RedisCacheBackend | NullCacheBackend
    cache: DegradableCache
    app_cache: AppCache
    rate_limiter: RateLimiter
    job_queue: RedisJobQueue | InMemoryJobQueue
    producer: JobProducer
    store: WebhookStore
    http_client: httpx.AsyncClient
    attempter: DeliveryAttempter
    dispatcher: EventDispatcher
    trigger: WebhookTrigger
    webhook_service: WebhookService
    worker: DeliveryWorker
    redis_connected: bool = False
    owns_http_client: bool = field(default=True, repr=False)

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        store: WebhookStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        redis_client: redis.Redis | None = None,
        metrics: MetricsCollector | None = None,
    ) -> "Container":
        """
        Wire every component. Does no I/O; call `startup` afterwards.

        `redis_client` overrides the client built from settings (tests pass a
        stub here).
        """
        settings = settings or get_settings()
        metrics = metrics or get_metrics_collector()

        client = redis_client if redis_client is not None else build_redis_client(settings)
        breaker = CircuitBreakerRegistry(metrics=metrics)
        cache_circuit = CircuitBreakerConfig.for_cache_backend(settings)

        cache_backend = build_cache_backend(client)
        fallback = FallbackStore(
            max_entries=settings.cache.CACHE_FALLBACK_MAX_ENTRIES,
            eviction_batch=settings.cache.CACHE_FALLBACK_EVICTION_BATCH,
            metrics=metrics,
        )
        cache = DegradableCache(
            cache_backend, breaker, fallback=fallback, circuit_config=cache_circuit, metrics=metrics
        )
        rate_limiter = RateLimiter(cache_backend, breaker, circuit_config=cache_circuit, metrics=metrics)

        job_queue = build_job_queue(settings, client)
        producer = JobProducer(
            job_queue, aggregation_debounce_seconds=settings.worker.AGGREGATION_DEBOUNCE_SECONDS
        )

        store = store if store is not None else InMemoryWebhookStore()
        owns_http_client = http_client is None
        http_client = http_client or httpx.AsyncClient(follow_redirects=False)

        attempter = DeliveryAttempter(
            store,
            WebhookSender.from_settings(http_client, settings),
            breaker,
            producer,
            retry_policy=RetryPolicy.from_settings(settings),
            circuit_config=CircuitBreakerConfig.for_webhooks(settings),
            metrics=metrics,
        )
        dispatcher = EventDispatcher(store, attempter, metrics=metrics)
        app_cache = AppCache(cache, settings)

        worker = DeliveryWorker.from_settings(settings, job_queue, dispatcher, attempter, store, producer)
        worker.register_handler(AggregationUpdateJob, MonthlyAggregationRefresher(app_cache))

        return cls(
            settings=settings,
            metrics=metrics,
            redis_client=client,
            breaker=breaker,
            cache_backend=cache_backend,
            cache=cache,
            app_cache=app_cache,
            rate_limiter=rate_limiter,
            job_queue=job_queue,
            producer=producer,
            store=store,
            http_client=http_client,
            attempter=attempter,
            dispatcher=dispatcher,
            trigger=WebhookTrigger(producer),
            webhook_service=WebhookService(
                store,
                attempter,
                breaker,
                max_per_user=settings.webhooks.WEBHOOK_MAX_PER_USER,
                require_https=settings.is_production,
            ),
            worker=worker,
            owns_http_client=owns_http_client,
        )

    async def startup(self) -> None:
        """
        STAGE-0: Connect backends and start the worker.
        """
        if self.redis_client is not None:
            self.redis_connected = await connect_with_retry(self.redis_client)
            if self.redis_connected and isinstance(self.job_queue, RedisJobQueue):
                await self.job_queue.requeue_orphans()

        if self.settings.app.RUN_WORKER:
            await self.worker.start()

        log_stage(
            logger,
            Stage.INITIALIZATION,
            "Container started",
            cache_backend=self.cache_backend.kind,
            job_queue=self.job_queue.kind,
            redis_connected=self.redis_connected,
            worker=self.worker.running,
        )

    async def shutdown(self) -> None:
        """
        STAGE-6: Stop the worker, then release clients.
        """
        await self.worker.stop(timeout=self.settings.worker.WORKER_SHUTDOWN_TIMEOUT_SECONDS)
        if self.owns_http_client:
            await self.http_client.aclose()
        await self.job_queue.close()
        await self.cache_backend.close()
        log_stage(logger, Stage.CLEANUP, "Container shut down")
