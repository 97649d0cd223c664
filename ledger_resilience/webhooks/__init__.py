"""
Webhooks

Components:
- models / events: Records and the event catalogue
- signing / url_validation: HMAC signatures and outbound URL safety
- store: Persistence contract and in-memory implementation
- delivery: Sender, retry policy and the single delivery path
- dispatcher: Event fan-out to subscribed webhooks
- worker: Queue consumer for dispatch and retry jobs
- integration: Fire-and-report trigger for business code
- service: Owner-facing management operations
"""

from ledger_resilience.webhooks.delivery import (
    DeliveryAttempter,
    RetryPolicy,
    SendResult,
    WebhookSender,
    webhook_circuit_id,
)
from ledger_resilience.webhooks.dispatcher import DeliveryOutcome, DispatchResult, EventDispatcher
from ledger_resilience.webhooks.events import WEBHOOK_EVENTS, is_valid_event, validate_events
from ledger_resilience.webhooks.integration import TriggerOutcome, WebhookTrigger
from ledger_resilience.webhooks.models import Webhook, WebhookDelivery, build_event_payload
from ledger_resilience.webhooks.service import WebhookService
from ledger_resilience.webhooks.signing import (
    generate_secret,
    sign_payload,
    verify_signature,
    verify_timestamp,
)
from ledger_resilience.webhooks.store import DeliveryStats, InMemoryWebhookStore, WebhookStore
from ledger_resilience.webhooks.url_validation import check_webhook_url, validate_webhook_url
from ledger_resilience.webhooks.worker import DeliveryWorker, SlidingThrottle

__all__ = [
    "DeliveryAttempter",
    "DeliveryOutcome",
    "DeliveryStats",
    "DeliveryWorker",
    "DispatchResult",
    "EventDispatcher",
    "InMemoryWebhookStore",
    "RetryPolicy",
    "SendResult",
    "SlidingThrottle",
    "TriggerOutcome",
    "WEBHOOK_EVENTS",
    "Webhook",
    "WebhookDelivery",
    "WebhookSender",
    "WebhookService",
    "WebhookStore",
    "WebhookTrigger",
    "build_event_payload",
    "check_webhook_url",
    "generate_secret",
    "is_valid_event",
    "sign_payload",
    "validate_events",
    "validate_webhook_url",
    "verify_signature",
    "verify_timestamp",
    "webhook_circuit_id",
]
