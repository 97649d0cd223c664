"""
Webhook Signing

Every delivery body is signed with HMAC-SHA256 under the webhook's secret:

    X-Webhook-Signature: sha256=<hex digest of the raw body>
    X-Webhook-Timestamp: <epoch seconds when the attempt was sent>

Receivers recompute the digest over the exact bytes they received and compare
in constant time, then reject requests whose timestamp is outside their
tolerance to stop replays.
"""

import hashlib
import hmac
import secrets
import time

from ledger_resilience.core.config.constants import (
    HEADER_WEBHOOK_EVENT,
    HEADER_WEBHOOK_ID,
    HEADER_WEBHOOK_SIGNATURE,
    HEADER_WEBHOOK_TIMESTAMP,
    SIGNATURE_PREFIX,
    WEBHOOK_SECRET_PREFIX,
)

DEFAULT_TOLERANCE_SECONDS = 300


def generate_secret() -> str:
    return f"{WEBHOOK_SECRET_PREFIX}{secrets.token_hex(32)}"


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes | str, signature: str, secret: str) -> bool:
    if isinstance(body, str):
        body = body.encode()
    expected = sign_payload(body, secret)
    return hmac.compare_digest(expected.encode(), signature.encode())


def verify_timestamp(
    timestamp: str | int,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """True when the timestamp is within `tolerance_seconds` of now, either side."""
    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        return False
    current = time.time() if now is None else now
    return abs(current - sent_at) <= tolerance_seconds


def build_headers(
    body: bytes,
    secret: str,
    event_id: str,
    event: str,
    user_agent: str,
    timestamp: int | None = None,
) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        HEADER_WEBHOOK_SIGNATURE: sign_payload(body, secret),
        HEADER_WEBHOOK_TIMESTAMP: str(int(time.time()) if timestamp is None else timestamp),
        HEADER_WEBHOOK_ID: event_id,
        HEADER_WEBHOOK_EVENT: event,
    }
