"""
Webhook Event Catalogue

Event types a webhook may subscribe to, grouped by resource.
"""

from collections.abc import Iterable

from ledger_resilience.core.exceptions import InvalidWebhookEventError

EVENT_GROUPS: dict[str, tuple[str, ...]] = {
    "invoice": ("created", "updated", "deleted", "paid", "overdue", "sent"),
    "payment": ("received", "refunded"),
    "customer": ("created", "updated", "deleted"),
    "vendor": ("created", "updated", "deleted"),
    "einvoice": ("submitted", "validated", "rejected", "cancelled"),
    "bill": ("created", "updated", "paid"),
    "quotation": ("created", "updated", "accepted", "rejected", "converted"),
    "credit-note": ("created", "applied"),
    "debit-note": ("created", "applied"),
}

WEBHOOK_EVENTS: tuple[str, ...] = tuple(
    f"{resource}.{action}" for resource, actions in EVENT_GROUPS.items() for action in actions
)

_EVENT_SET = frozenset(WEBHOOK_EVENTS)


def is_valid_event(event: str) -> bool:
    return event in _EVENT_SET


def ensure_valid_event(event: str) -> str:
    if not is_valid_event(event):
        raise InvalidWebhookEventError(f"Unknown webhook event: {event}", details={"event": event})
    return event


def validate_events(events: Iterable[str]) -> list[str]:
    """
    Normalize a subscription list: order kept, duplicates dropped.

    Raises:
        InvalidWebhookEventError: If the list is empty or names unknown events
    """
    unique = list(dict.fromkeys(events))
    if not unique:
        raise InvalidWebhookEventError("At least one event is required")

    unknown = [event for event in unique if not is_valid_event(event)]
    if unknown:
        raise InvalidWebhookEventError(
            f"Unknown webhook events: {', '.join(unknown)}",
            details={"invalid_events": unknown},
        )
    return unique


def event_catalogue() -> list[dict[str, str]]:
    return [
        {"event": event, "resource": event.split(".", 1)[0]}
        for event in WEBHOOK_EVENTS
    ]
