#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
resilience and event-delivery core. Every tunable (breaker thresholds, cache
capacity, retry back-off, worker throttling) is declared here once.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup
- Section objects (settings.redis, settings.webhooks, ...) for grouped access
- Easy testing with reload_settings()

Malformed values that would only break a single component (for example a
garbage REDIS_URL) are NOT rejected here. The component factories detect them
and degrade to their in-memory strategy instead.

Author: Platform Team
Date: 2025-12-05
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the durable cache, rate-limit log and job queue.

    STAGE-0.1: Redis connection configuration

    REDIS_URL wins over the discrete host/port fields when present.
    REDIS_ENABLED=False selects the in-memory strategies everywhere.
    """

    REDIS_ENABLED: bool = Field(default=True, description="Use Redis as the durable backend")
    REDIS_URL: str | None = Field(default=None, description="Full redis:// URL (optional)")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")

    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=2.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=2.0, description="Connect timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Degradable cache configuration.

    STAGE-2: Fallback capacity and namespace TTLs
    """

    CACHE_FALLBACK_MAX_ENTRIES: int = Field(default=1000, description="In-process fallback capacity")
    CACHE_FALLBACK_EVICTION_BATCH: int = Field(default=100, description="Entries evicted per overflow")

    CACHE_TTL_DASHBOARD_STATS: int = Field(default=60, description="Dashboard stats TTL (seconds)")
    CACHE_TTL_REVENUE_CHART: int = Field(default=300, description="Revenue chart TTL (seconds)")
    CACHE_TTL_LIST_DATA: int = Field(default=30, description="List pages TTL (seconds)")
    CACHE_TTL_API_KEY: int = Field(default=120, description="API key validation TTL (seconds)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker thresholds for the two protected dependency families.

    STAGE-CB: Circuit breaker thresholds

    The cache backend breaker has no sliding window: failures accumulate until
    a success resets them. The webhook breaker counts failures over a window.
    """

    CB_CACHE_FAILURE_THRESHOLD: int = Field(default=3, description="Cache backend failures before opening")
    CB_CACHE_RESET_TIMEOUT_MS: int = Field(default=30_000, description="Cache backend open duration")
    CB_CACHE_SUCCESS_THRESHOLD: int = Field(default=2, description="Probe successes to close")

    CB_WEBHOOK_FAILURE_THRESHOLD: int = Field(default=5, description="Endpoint failures before opening")
    CB_WEBHOOK_RESET_TIMEOUT_MS: int = Field(default=300_000, description="Endpoint open duration")
    CB_WEBHOOK_SUCCESS_THRESHOLD: int = Field(default=2, description="Probe successes to close")
    CB_WEBHOOK_WINDOW_MS: int = Field(default=300_000, description="Endpoint failure window")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Rate limiting configuration.

    STAGE-1: Inbound throttling

    Only requests arriving from a trusted proxy may set X-Forwarded-For.
    """

    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable inbound rate limiting")
    RATE_LIMIT_TRUSTED_PROXIES: list[str] = Field(
        default=["127.0.0.1", "::1"], description="Proxies allowed to set X-Forwarded-For"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class WebhookSettings(BaseSettings):
    """
    Outbound webhook delivery configuration.

    STAGE-4: Delivery, retry and signing parameters
    """

    WEBHOOK_MAX_ATTEMPTS: int = Field(default=5, description="Attempts before terminal failure")
    WEBHOOK_RETRY_BASE_DELAY_SECONDS: int = Field(default=60, description="Back-off base delay")
    WEBHOOK_RETRY_MAX_DELAY_SECONDS: int = Field(default=3600, description="Back-off cap")
    WEBHOOK_RETRY_JITTER: float = Field(default=0.1, description="Jitter ratio applied to back-off")
    WEBHOOK_TIMEOUT_SECONDS: float = Field(default=30.0, description="Per-attempt HTTP timeout")
    WEBHOOK_RESPONSE_BODY_LIMIT: int = Field(default=2000, description="Stored response body chars")
    WEBHOOK_MAX_PER_USER: int = Field(default=10, description="Active webhooks per user")
    WEBHOOK_USER_AGENT: str = Field(default="LedgerWebhooks/1.0", description="Outbound User-Agent")

    @field_validator("WEBHOOK_RETRY_JITTER")
    @classmethod
    def validate_jitter(cls, v):
        """Jitter is a ratio of the computed delay."""
        if not 0.0 <= v < 1.0:
            raise ValueError("WEBHOOK_RETRY_JITTER must be in [0.0, 1.0)")
        return v

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class WorkerSettings(BaseSettings):
    """
    Delivery worker configuration.

    STAGE-Q: Consumer-side backpressure
    """

    WORKER_CONCURRENCY: int = Field(default=10, description="Jobs processed simultaneously")
    WORKER_THROTTLE_MAX: int = Field(default=200, description="Jobs started per throttle window")
    WORKER_THROTTLE_WINDOW_SECONDS: float = Field(default=60.0, description="Throttle window length")
    WORKER_POLL_INTERVAL_MS: int = Field(default=500, description="Idle poll interval")
    WORKER_ERROR_BACKOFF_SECONDS: float = Field(default=5.0, description="Back-off after loop errors")
    WORKER_JOB_MAX_RETRIES: int = Field(default=3, description="Queue-level retries for crashed handlers")
    WORKER_JOB_KEY_RETENTION_SECONDS: int = Field(default=86_400, description="Idempotency key lifetime")
    WORKER_SHUTDOWN_TIMEOUT_SECONDS: float = Field(default=5.0, description="Graceful stop timeout")
    WORKER_RETRY_SWEEP_LIMIT: int = Field(default=100, description="Due retries re-enqueued per sweep")
    WORKER_RETRY_SWEEP_INTERVAL_SECONDS: float = Field(default=60.0, description="Seconds between retry sweeps")
    AGGREGATION_DEBOUNCE_SECONDS: int = Field(default=5, description="Monthly aggregation debounce")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Ledger Resilience Core", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    RUN_WORKER: bool = Field(default=True, description="Run the delivery worker inside the API process")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from ledger_resilience.core.config.settings import get_settings

        settings = get_settings()
        max_attempts = settings.webhooks.WEBHOOK_MAX_ATTEMPTS
        concurrency = settings.worker.WORKER_CONCURRENCY
    """

    # Redis settings
    REDIS_ENABLED: bool = Field(default=True, description="Use Redis as the durable backend")
    REDIS_URL: str | None = Field(default=None, description="Full redis:// URL (optional)")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=2.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=2.0, description="Connect timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    # Cache settings
    CACHE_FALLBACK_MAX_ENTRIES: int = Field(default=1000, description="In-process fallback capacity")
    CACHE_FALLBACK_EVICTION_BATCH: int = Field(default=100, description="Entries evicted per overflow")
    CACHE_TTL_DASHBOARD_STATS: int = Field(default=60, description="Dashboard stats TTL (seconds)")
    CACHE_TTL_REVENUE_CHART: int = Field(default=300, description="Revenue chart TTL (seconds)")
    CACHE_TTL_LIST_DATA: int = Field(default=30, description="List pages TTL (seconds)")
    CACHE_TTL_API_KEY: int = Field(default=120, description="API key validation TTL (seconds)")

    # Circuit Breaker settings
    CB_CACHE_FAILURE_THRESHOLD: int = Field(default=3, description="Cache backend failures before opening")
    CB_CACHE_RESET_TIMEOUT_MS: int = Field(default=30_000, description="Cache backend open duration")
    CB_CACHE_SUCCESS_THRESHOLD: int = Field(default=2, description="Probe successes to close")
    CB_WEBHOOK_FAILURE_THRESHOLD: int = Field(default=5, description="Endpoint failures before opening")
    CB_WEBHOOK_RESET_TIMEOUT_MS: int = Field(default=300_000, description="Endpoint open duration")
    CB_WEBHOOK_SUCCESS_THRESHOLD: int = Field(default=2, description="Probe successes to close")
    CB_WEBHOOK_WINDOW_MS: int = Field(default=300_000, description="Endpoint failure window")

    # Rate Limiting settings
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable inbound rate limiting")
    RATE_LIMIT_TRUSTED_PROXIES: list[str] = Field(
        default=["127.0.0.1", "::1"], description="Proxies allowed to set X-Forwarded-For"
    )

    # Webhook settings
    WEBHOOK_MAX_ATTEMPTS: int = Field(default=5, description="Attempts before terminal failure")
    WEBHOOK_RETRY_BASE_DELAY_SECONDS: int = Field(default=60, description="Back-off base delay")
    WEBHOOK_RETRY_MAX_DELAY_SECONDS: int = Field(default=3600, description="Back-off cap")
    WEBHOOK_RETRY_JITTER: float = Field(default=0.1, description="Jitter ratio applied to back-off")
    WEBHOOK_TIMEOUT_SECONDS: float = Field(default=30.0, description="Per-attempt HTTP timeout")
    WEBHOOK_RESPONSE_BODY_LIMIT: int = Field(default=2000, description="Stored response body chars")
    WEBHOOK_MAX_PER_USER: int = Field(default=10, description="Active webhooks per user")
    WEBHOOK_USER_AGENT: str = Field(default="LedgerWebhooks/1.0", description="Outbound User-Agent")

    # Worker settings
    WORKER_CONCURRENCY: int = Field(default=10, description="Jobs processed simultaneously")
    WORKER_THROTTLE_MAX: int = Field(default=200, description="Jobs started per throttle window")
    WORKER_THROTTLE_WINDOW_SECONDS: float = Field(default=60.0, description="Throttle window length")
    WORKER_POLL_INTERVAL_MS: int = Field(default=500, description="Idle poll interval")
    WORKER_ERROR_BACKOFF_SECONDS: float = Field(default=5.0, description="Back-off after loop errors")
    WORKER_JOB_MAX_RETRIES: int = Field(default=3, description="Queue-level retries for crashed handlers")
    WORKER_JOB_KEY_RETENTION_SECONDS: int = Field(default=86_400, description="Idempotency key lifetime")
    WORKER_SHUTDOWN_TIMEOUT_SECONDS: float = Field(default=5.0, description="Graceful stop timeout")
    WORKER_RETRY_SWEEP_LIMIT: int = Field(default=100, description="Due retries re-enqueued per sweep")
    WORKER_RETRY_SWEEP_INTERVAL_SECONDS: float = Field(default=60.0, description="Seconds between retry sweeps")
    AGGREGATION_DEBOUNCE_SECONDS: int = Field(default=5, description="Monthly aggregation debounce")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    DEBUG: bool = Field(default=False, description="Debug mode")
    APP_NAME: str = Field(default="Ledger Resilience Core", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    RUN_WORKER: bool = Field(default=True, description="Run the delivery worker inside the API process")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("WEBHOOK_RETRY_JITTER")
    @classmethod
    def validate_jitter(cls, v):
        """Jitter is a ratio of the computed delay."""
        if not 0.0 <= v < 1.0:
            raise ValueError("WEBHOOK_RETRY_JITTER must be in [0.0, 1.0)")
        return v

    # Nested configuration objects
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_ENABLED=self.REDIS_ENABLED,
            REDIS_URL=self.REDIS_URL,
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            CACHE_FALLBACK_MAX_ENTRIES=self.CACHE_FALLBACK_MAX_ENTRIES,
            CACHE_FALLBACK_EVICTION_BATCH=self.CACHE_FALLBACK_EVICTION_BATCH,
            CACHE_TTL_DASHBOARD_STATS=self.CACHE_TTL_DASHBOARD_STATS,
            CACHE_TTL_REVENUE_CHART=self.CACHE_TTL_REVENUE_CHART,
            CACHE_TTL_LIST_DATA=self.CACHE_TTL_LIST_DATA,
            CACHE_TTL_API_KEY=self.CACHE_TTL_API_KEY,
        )

    @property
    def circuit_breaker(self) -> 'CircuitBreakerSettings':
        """Get circuit breaker settings."""
        return CircuitBreakerSettings(
            CB_CACHE_FAILURE_THRESHOLD=self.CB_CACHE_FAILURE_THRESHOLD,
            CB_CACHE_RESET_TIMEOUT_MS=self.CB_CACHE_RESET_TIMEOUT_MS,
            CB_CACHE_SUCCESS_THRESHOLD=self.CB_CACHE_SUCCESS_THRESHOLD,
            CB_WEBHOOK_FAILURE_THRESHOLD=self.CB_WEBHOOK_FAILURE_THRESHOLD,
            CB_WEBHOOK_RESET_TIMEOUT_MS=self.CB_WEBHOOK_RESET_TIMEOUT_MS,
            CB_WEBHOOK_SUCCESS_THRESHOLD=self.CB_WEBHOOK_SUCCESS_THRESHOLD,
            CB_WEBHOOK_WINDOW_MS=self.CB_WEBHOOK_WINDOW_MS,
        )

    @property
    def rate_limit(self) -> 'RateLimitSettings':
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_ENABLED=self.RATE_LIMIT_ENABLED,
            RATE_LIMIT_TRUSTED_PROXIES=self.RATE_LIMIT_TRUSTED_PROXIES,
        )

    @property
    def webhooks(self) -> 'WebhookSettings':
        """Get webhook delivery settings."""
        return WebhookSettings(
            WEBHOOK_MAX_ATTEMPTS=self.WEBHOOK_MAX_ATTEMPTS,
            WEBHOOK_RETRY_BASE_DELAY_SECONDS=self.WEBHOOK_RETRY_BASE_DELAY_SECONDS,
            WEBHOOK_RETRY_MAX_DELAY_SECONDS=self.WEBHOOK_RETRY_MAX_DELAY_SECONDS,
            WEBHOOK_RETRY_JITTER=self.WEBHOOK_RETRY_JITTER,
            WEBHOOK_TIMEOUT_SECONDS=self.WEBHOOK_TIMEOUT_SECONDS,
            WEBHOOK_RESPONSE_BODY_LIMIT=self.WEBHOOK_RESPONSE_BODY_LIMIT,
            WEBHOOK_MAX_PER_USER=self.WEBHOOK_MAX_PER_USER,
            WEBHOOK_USER_AGENT=self.WEBHOOK_USER_AGENT,
        )

    @property
    def worker(self) -> 'WorkerSettings':
        """Get delivery worker settings."""
        return WorkerSettings(
            WORKER_CONCURRENCY=self.WORKER_CONCURRENCY,
            WORKER_THROTTLE_MAX=self.WORKER_THROTTLE_MAX,
            WORKER_THROTTLE_WINDOW_SECONDS=self.WORKER_THROTTLE_WINDOW_SECONDS,
            WORKER_POLL_INTERVAL_MS=self.WORKER_POLL_INTERVAL_MS,
            WORKER_ERROR_BACKOFF_SECONDS=self.WORKER_ERROR_BACKOFF_SECONDS,
            WORKER_JOB_MAX_RETRIES=self.WORKER_JOB_MAX_RETRIES,
            WORKER_JOB_KEY_RETENTION_SECONDS=self.WORKER_JOB_KEY_RETENTION_SECONDS,
            WORKER_SHUTDOWN_TIMEOUT_SECONDS=self.WORKER_SHUTDOWN_TIMEOUT_SECONDS,
            WORKER_RETRY_SWEEP_LIMIT=self.WORKER_RETRY_SWEEP_LIMIT,
            WORKER_RETRY_SWEEP_INTERVAL_SECONDS=self.WORKER_RETRY_SWEEP_INTERVAL_SECONDS,
            AGGREGATION_DEBOUNCE_SECONDS=self.AGGREGATION_DEBOUNCE_SECONDS,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            DEBUG=self.DEBUG,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            RUN_WORKER=self.RUN_WORKER,
        )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
