"""
Tallyman Result Types.

Structured results for reconciliation passes. A pass never raises for a
single failed SKU; it reports it here and keeps going.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from tallyman.exceptions import UNREACHABLE_CODES


class ReconciliationState(str, enum.Enum):
    """Orchestrator states for one invocation."""

    IDLE = "idle"
    LOCKING = "locking"
    LOADING_SNAPSHOT = "loading_snapshot"
    PRICE_APPLY = "price_apply"
    STOCK_APPLY = "stock_apply"
    BOTH = "both"
    DONE = "done"
    DONE_WITH_ERRORS = "done_with_errors"


@dataclass(frozen=True)
class SkuUpdateError:
    """Update of one SKU failed."""

    sku_id: str
    error: str
    code: str = "RECORD_REJECTED"

    def as_dict(self) -> dict:
        return {"sku_id": self.sku_id, "error": self.error, "code": self.code}


@dataclass(frozen=True)
class AppliedUpdate:
    """One successful write, kept so a pass can be reverted."""

    sku_id: str
    field: str
    previous: Any
    current: Any


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    return value


@dataclass
class ReconcileResult:
    """
    Outcome of one stock or price pass over a product's SKUs.

    updated_count counts successful writes; errors lists the SKUs whose
    write failed. shortfall is the part of a stock reduction that could
    not be applied because the walk ran out of SKUs.
    """

    product_id: str
    operation: str
    updated_count: int = 0
    errors: list[SkuUpdateError] = field(default_factory=list)
    applied: list[AppliedUpdate] = field(default_factory=list)
    shortfall: int = 0
    requested_total: int | None = None
    previous_total: int | None = None
    skipped: str | None = None

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def success(self) -> bool:
        return not self.errors and self.shortfall == 0

    @property
    def unreachable(self) -> bool:
        """Every write of the pass failed without an answer from the record service."""
        return (
            self.updated_count == 0
            and bool(self.errors)
            and all(e.code in UNREACHABLE_CODES for e in self.errors)
        )

    @property
    def achieved_total(self) -> int | None:
        """Aggregate stock after the writes that actually landed."""
        if self.previous_total is None:
            return None
        landed = sum(
            u.current - u.previous for u in self.applied if u.field == "stock"
        )
        return self.previous_total + landed

    def as_dict(self) -> dict:
        data = {
            "product_id": self.product_id,
            "operation": self.operation,
            "updated_count": self.updated_count,
            "errors": [e.as_dict() for e in self.errors],
            "shortfall": self.shortfall,
            "success": self.success,
        }
        if self.operation == "stock":
            data["requested_total"] = self.requested_total
            data["previous_total"] = self.previous_total
            data["achieved_total"] = self.achieved_total
        if self.skipped:
            data["skipped"] = self.skipped
        return data


@dataclass
class ReconciliationReport:
    """
    Orchestrator report.

    price / stock are None when the corresponding pass was not requested.
    compensated lists the writes that were rolled back after a failed
    stock pass (COMPENSATE_ON_ERROR).
    """

    product_id: str
    state: ReconciliationState = ReconciliationState.IDLE
    price: ReconcileResult | None = None
    stock: ReconcileResult | None = None
    compensated: list[AppliedUpdate] = field(default_factory=list)

    def _passes(self) -> list[ReconcileResult]:
        return [r for r in (self.price, self.stock) if r is not None]

    @property
    def success(self) -> bool:
        return self.state == ReconciliationState.DONE

    @property
    def updated_count(self) -> int:
        return sum(r.updated_count for r in self._passes())

    @property
    def failed_count(self) -> int:
        return sum(len(r.errors) for r in self._passes())

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "state": self.state.value,
            "success": self.success,
            "updated_count": self.updated_count,
            "failed_count": self.failed_count,
            "price": self.price.as_dict() if self.price else None,
            "stock": self.stock.as_dict() if self.stock else None,
            "compensated": [
                {
                    "sku_id": u.sku_id,
                    "field": u.field,
                    "restored": _jsonable(u.previous),
                }
                for u in self.compensated
            ],
        }


@dataclass(frozen=True)
class StockStatus:
    """Aggregate stock view of one product."""

    product_id: str
    total_stock: int
    recorded_total: int
    min_stock: int
    sku_count: int

    @property
    def below_min_stock(self) -> bool:
        return self.total_stock < self.min_stock

    @property
    def drift(self) -> int:
        """Denormalised product total minus the authoritative SKU sum."""
        return self.recorded_total - self.total_stock

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "total_stock": self.total_stock,
            "recorded_total": self.recorded_total,
            "min_stock": self.min_stock,
            "sku_count": self.sku_count,
            "below_min_stock": self.below_min_stock,
            "drift": self.drift,
        }
