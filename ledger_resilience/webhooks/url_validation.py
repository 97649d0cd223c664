"""
Outbound URL Validation

Webhook URLs are supplied by users, so every one is checked before it is
stored and again before each send: the target must be a public HTTP(S)
endpoint, never internal infrastructure.
"""

import ipaddress
import re
import socket
from urllib.parse import urlsplit

from ledger_resilience.core.exceptions import WebhookUrlError

ALLOWED_SCHEMES = frozenset({"http", "https"})

BLOCKED_PORTS = frozenset({22, 23, 25, 3306, 5432, 6379, 27017, 11211})

_BLOCKED_HOST_PATTERNS = (
    re.compile(r"^localhost$"),
    re.compile(r"^metadata(\..*)?$"),
    re.compile(r"\.internal$"),
    re.compile(r"\.local$"),
    re.compile(r"\.localhost$"),
)

# Dotted, integer, hex and octal IPv4 spellings that resolvers accept.
_NUMERIC_HOST = re.compile(r"^(0x[0-9a-f]*|[0-9]+)(\.(0x[0-9a-f]*|[0-9]+)){0,3}\.?$")

INTERNAL_ADDRESS_REASON = "Webhook URLs cannot target internal or private addresses"


def _parse_address(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        if not _NUMERIC_HOST.match(host):
            return None
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host.rstrip(".")))
        except OSError:
            return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _is_internal_ip(host: str) -> bool:
    address = _parse_address(host)
    if address is None:
        return False
    return (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
        or address.is_multicast
    )


def check_webhook_url(url: str, require_https: bool = False) -> str | None:
    """Return the rejection reason for `url`, or None when it is acceptable."""
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return "Invalid URL format"

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return f"Invalid URL scheme: {scheme or 'none'}. Only HTTP(S) allowed."

    host = (parts.hostname or "").lower()
    if not host:
        return "Invalid URL format"

    if _is_internal_ip(host) or any(p.search(host) for p in _BLOCKED_HOST_PATTERNS):
        return INTERNAL_ADDRESS_REASON

    if parts.username or parts.password:
        return "Webhook URLs cannot contain credentials"

    effective_port = port or (443 if scheme == "https" else 80)
    if effective_port in BLOCKED_PORTS:
        return f"Port {effective_port} is not allowed for webhooks"

    if require_https and scheme != "https":
        return "Webhook URLs must use HTTPS in production"

    return None


def validate_webhook_url(url: str, require_https: bool = False) -> str:
    """
    Raises:
        WebhookUrlError: If the URL is malformed or targets a blocked address
    """
    reason = check_webhook_url(url, require_https=require_https)
    if reason is not None:
        raise WebhookUrlError(reason, details={"url": url})
    return url.strip()
