"""
Ordering policy over a SKU snapshot, keyed on creation time.

Oldest first picks the addition target; newest first drives removals.
"""

from datetime import datetime, timezone

from tallyman.protocols.records import SkuRecord

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def created_at_key(sku: SkuRecord) -> datetime:
    """Sort key; SKUs without a usable timestamp count as created at epoch 0."""
    return sku.created_at or EPOCH


def oldest_first(skus: list[SkuRecord]) -> list[SkuRecord]:
    # sorted() is stable: ties keep their snapshot order.
    return sorted(skus, key=created_at_key)


def newest_first(skus: list[SkuRecord]) -> list[SkuRecord]:
    """Exact reverse of oldest_first (ties therefore come out reversed too)."""
    return list(reversed(oldest_first(skus)))
