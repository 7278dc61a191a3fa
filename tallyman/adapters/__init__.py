"""
Tallyman Adapters.

Implementations of protocols for external systems:
- http: RecordClient over the record service's REST API (httpx)
- memory: Dict-backed RecordClient for development and tests
- locks: LockBackend implementations (Django cache, noop)
"""

from tallyman.adapters.http import HttpRecordClient, extract_data
from tallyman.adapters.locks import CacheLock, NoopLock
from tallyman.adapters.memory import InMemoryRecordClient

__all__ = [
    # Record clients
    "HttpRecordClient",
    "InMemoryRecordClient",
    "extract_data",
    # Locks
    "CacheLock",
    "NoopLock",
]
