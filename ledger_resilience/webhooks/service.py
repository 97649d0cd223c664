"""
Webhook Management

Owner-facing operations behind the webhook routes: registration with URL and
event validation, the per-user limit on active webhooks, secret rotation,
delivery history, manual resend and test sends.
"""

from typing import Any

from ledger_resilience.core.config.constants import DeliveryStatus
from ledger_resilience.core.exceptions import WebhookError, WebhookLimitError, WebhookNotFoundError
from ledger_resilience.core.logging.logger import get_logger
from ledger_resilience.core.resilience.circuit_breaker import CircuitBreakerRegistry, CircuitSnapshot
from ledger_resilience.webhooks.delivery import DeliveryAttempter, webhook_circuit_id
from ledger_resilience.webhooks.events import validate_events
from ledger_resilience.webhooks.models import (
    Webhook,
    WebhookDelivery,
    build_event_payload,
    isoformat_z,
    utcnow,
)
from ledger_resilience.webhooks.signing import generate_secret
from ledger_resilience.webhooks.store import DeliveryStats, WebhookStore
from ledger_resilience.webhooks.url_validation import validate_webhook_url

logger = get_logger(__name__)

TEST_EVENT = "invoice.created"


def _test_invoice() -> dict[str, Any]:
    return {
        "id": "test_invoice_123",
        "invoiceNumber": "TEST-001",
        "status": "draft",
        "total": "100.00",
        "currency": "MYR",
        "message": "This is a test webhook delivery",
        "timestamp": isoformat_z(utcnow()),
    }


class WebhookService:
    def __init__(
        self,
        store: WebhookStore,
        attempter: DeliveryAttempter,
        breaker: CircuitBreakerRegistry,
        max_per_user: int = 10,
        require_https: bool = False,
    ):
        self._store = store
        self._attempter = attempter
        self._breaker = breaker
        self._max_per_user = max_per_user
        self._require_https = require_https

    async def _owned(self, webhook_id: str, user_id: str) -> Webhook:
        webhook = await self._store.get_webhook(webhook_id, user_id)
        if webhook is None:
            raise WebhookNotFoundError("Webhook not found", details={"webhook_id": webhook_id})
        return webhook

    async def register(
        self, user_id: str, url: str, events: list[str], description: str | None = None
    ) -> Webhook:
        """
        Raises:
            WebhookUrlError: Unsafe or malformed URL
            InvalidWebhookEventError: Empty or unknown events
            WebhookLimitError: User already has the maximum of active webhooks
        """
        url = validate_webhook_url(url, require_https=self._require_https)
        events = validate_events(events)

        if await self._store.count_active(user_id) >= self._max_per_user:
            raise WebhookLimitError(
                f"Maximum of {self._max_per_user} active webhooks reached",
                details={"limit": self._max_per_user},
            )

        webhook = await self._store.create_webhook(
            Webhook(
                user_id=user_id,
                url=url,
                secret=generate_secret(),
                events=events,
                description=description,
            )
        )
        logger.info("Webhook registered", webhook_id=webhook.id, user_id=user_id, events=events)
        return webhook

    async def get(self, user_id: str, webhook_id: str) -> Webhook:
        return await self._owned(webhook_id, user_id)

    async def list_webhooks(self, user_id: str) -> list[Webhook]:
        return await self._store.list_webhooks(user_id)

    async def update(
        self,
        user_id: str,
        webhook_id: str,
        url: str | None = None,
        events: list[str] | None = None,
        description: str | None = None,
        is_active: bool | None = None,
    ) -> Webhook:
        current = await self._owned(webhook_id, user_id)

        changes: dict[str, Any] = {}
        if url is not None:
            changes["url"] = validate_webhook_url(url, require_https=self._require_https)
        if events is not None:
            changes["events"] = validate_events(events)
        if description is not None:
            changes["description"] = description
        if is_active is not None:
            if is_active and not current.is_active:
                if await self._store.count_active(user_id) >= self._max_per_user:
                    raise WebhookLimitError(
                        f"Maximum of {self._max_per_user} active webhooks reached",
                        details={"limit": self._max_per_user},
                    )
            changes["is_active"] = is_active

        if not changes:
            return current
        updated = await self._store.update_webhook(webhook_id, user_id, **changes)
        if updated is None:
            raise WebhookNotFoundError("Webhook not found", details={"webhook_id": webhook_id})
        return updated

    async def deactivate(self, user_id: str, webhook_id: str) -> None:
        if not await self._store.deactivate_webhook(webhook_id, user_id):
            raise WebhookNotFoundError("Webhook not found", details={"webhook_id": webhook_id})
        logger.info("Webhook deactivated", webhook_id=webhook_id, user_id=user_id)

    async def rotate_secret(self, user_id: str, webhook_id: str) -> Webhook:
        await self._owned(webhook_id, user_id)
        webhook = await self._store.rotate_secret(webhook_id, user_id, generate_secret())
        if webhook is None:
            raise WebhookNotFoundError("Webhook not found", details={"webhook_id": webhook_id})
        logger.info("Webhook secret rotated", webhook_id=webhook_id, user_id=user_id)
        return webhook

    async def deliveries(
        self,
        user_id: str,
        webhook_id: str,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WebhookDelivery]:
        await self._owned(webhook_id, user_id)
        return await self._store.list_deliveries(webhook_id, status=status, limit=limit, offset=offset)

    async def stats(self, user_id: str, webhook_id: str) -> DeliveryStats:
        await self._owned(webhook_id, user_id)
        return await self._store.delivery_stats(webhook_id)

    async def resend(self, user_id: str, webhook_id: str, delivery_id: str) -> WebhookDelivery:
        """
        Send a failed delivery's payload again as a new delivery.

        The event id is kept so receivers still deduplicate; the new record
        starts again from zero attempts.
        """
        webhook = await self._owned(webhook_id, user_id)
        original = await self._store.get_delivery(delivery_id)
        if original is None or original.webhook_id != webhook.id:
            raise WebhookNotFoundError("Delivery not found", details={"delivery_id": delivery_id})
        if original.status != DeliveryStatus.FAILED:
            raise WebhookError(
                "Only failed deliveries can be resent",
                details={"delivery_id": delivery_id, "status": original.status.value},
            )

        delivery = await self._store.create_delivery(
            WebhookDelivery(
                webhook_id=webhook.id,
                user_id=webhook.user_id,
                event=original.event,
                event_id=original.event_id,
                payload=original.payload,
                max_attempts=self._attempter.retry_policy.max_attempts,
            )
        )
        return await self._attempter.attempt(delivery, webhook)

    async def send_test(self, user_id: str, webhook_id: str) -> WebhookDelivery:
        webhook = await self._owned(webhook_id, user_id)
        payload = build_event_payload(TEST_EVENT, _test_invoice())
        delivery = await self._store.create_delivery(
            WebhookDelivery(
                webhook_id=webhook.id,
                user_id=webhook.user_id,
                event=TEST_EVENT,
                event_id=payload["id"],
                payload=payload,
                max_attempts=self._attempter.retry_policy.max_attempts,
            )
        )
        return await self._attempter.attempt(delivery, webhook)

    async def circuit_status(self, user_id: str, webhook_id: str) -> CircuitSnapshot:
        await self._owned(webhook_id, user_id)
        return self._breaker.get_state(webhook_circuit_id(webhook_id))
