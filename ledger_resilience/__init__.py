"""
Ledger Resilience

Resilience and event-delivery core for the bookkeeping API: circuit breaking,
degradable caching, request throttling and signed webhook fan-out.
"""

__version__ = "1.0.0"
