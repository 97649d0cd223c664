"""
Core Interfaces Module

Protocols for the pluggable strategies the resilience core is built on.

Components:
-----------
- **cache.py**: CacheBackend protocol (Redis or in-memory-only)
- **job_queue.py**: JobQueue protocol and the Job record

Author: Platform Team
Date: 2025-12-08
"""

from ledger_resilience.core.interfaces.cache import CacheBackend
from ledger_resilience.core.interfaces.job_queue import Job, JobQueue

__all__ = ["CacheBackend", "Job", "JobQueue"]
