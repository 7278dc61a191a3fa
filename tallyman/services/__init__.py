"""
Tallyman Services.

Reconciliation building blocks, free of Django state:
- snapshot: Load a product's SKUs and normalise their fields
- ordering: Oldest-first / newest-first policy on creation time
- stock: Plan and apply a stock delta across SKUs
- price: Fan a base price out to every SKU
- compensation: Revert the writes of a failed pass
"""

from tallyman.services.compensation import revert_applied
from tallyman.services.ordering import newest_first, oldest_first
from tallyman.services.price import propagate_price
from tallyman.services.snapshot import (
    coerce_price,
    coerce_stock,
    load_snapshot,
    parse_created_at,
)
from tallyman.services.stock import (
    PlannedUpdate,
    StockPlan,
    apply_stock_plan,
    plan_stock_updates,
    reconcile_stock,
)

__all__ = [
    "load_snapshot",
    "coerce_stock",
    "coerce_price",
    "parse_created_at",
    "oldest_first",
    "newest_first",
    "StockPlan",
    "PlannedUpdate",
    "plan_stock_updates",
    "apply_stock_plan",
    "reconcile_stock",
    "propagate_price",
    "revert_applied",
]
