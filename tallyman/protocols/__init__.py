"""
Tallyman Protocols.

Defines interfaces for external integrations.
"""

from tallyman.protocols.lock import LockBackend
from tallyman.protocols.records import (
    ProductRecord,
    RecordClient,
    SkuRecord,
    record_id,
)

__all__ = [
    # Record Protocol
    "RecordClient",
    "SkuRecord",
    "ProductRecord",
    "record_id",
    # Lock Protocol
    "LockBackend",
]
