"""
Stock delta reconciler.

Makes the sum of SKU stock match a product's desired aggregate:

- delta > 0: the whole addition goes to the oldest SKU (one write)
- delta < 0: stock is removed newest SKU first, LIFO style, skipping
  SKUs already at zero, until the removal budget is spent

Planning is pure (plan_stock_updates) so the allocation can be checked
without a record service; apply_stock_plan issues the writes one at a
time, in plan order.
"""

import logging
from dataclasses import dataclass, field

from tallyman.exceptions import TallyError
from tallyman.protocols.records import RecordClient, SkuRecord
from tallyman.results import AppliedUpdate, ReconcileResult, SkuUpdateError
from tallyman.services.ordering import newest_first, oldest_first
from tallyman.services.snapshot import coerce_stock, load_snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedUpdate:
    """One SKU write the reconciler intends to issue."""

    sku: SkuRecord
    new_stock: int

    @property
    def change(self) -> int:
        return self.new_stock - self.sku.stock


@dataclass
class StockPlan:
    """Allocation of a stock delta across a snapshot."""

    desired_total: int
    current_total: int
    updates: list[PlannedUpdate] = field(default_factory=list)
    shortfall: int = 0

    @property
    def delta(self) -> int:
        return self.desired_total - self.current_total

    @property
    def is_noop(self) -> bool:
        return not self.updates


def plan_stock_updates(skus: list[SkuRecord], desired_total_stock) -> StockPlan:
    """
    Work out which SKUs change and to what.

    Args:
        skus: Snapshot of the product's SKUs
        desired_total_stock: Target aggregate; invalid input counts as 0

    Returns:
        StockPlan with the writes in the order they must be issued
    """
    desired = coerce_stock(desired_total_stock)
    current = sum(sku.stock for sku in skus)
    plan = StockPlan(desired_total=desired, current_total=current)

    if not skus or plan.delta == 0:
        return plan

    if plan.delta > 0:
        target = oldest_first(skus)[0]
        plan.updates.append(PlannedUpdate(target, target.stock + plan.delta))
        return plan

    remaining = -plan.delta
    for sku in newest_first(skus):
        if remaining <= 0:
            break
        if sku.stock <= 0:
            continue
        reduce_by = min(sku.stock, remaining)
        plan.updates.append(PlannedUpdate(sku, sku.stock - reduce_by))
        remaining -= reduce_by

    plan.shortfall = remaining
    return plan


def apply_stock_plan(
    client: RecordClient, product_id: str, plan: StockPlan
) -> ReconcileResult:
    """
    Issue the planned writes sequentially.

    A failed write (rejected, timed out, connection dropped) is recorded and
    the walk continues; the removal budget was already consumed when the
    plan was made, so later SKUs are not asked to cover for it.

    Raises:
        TallyError: RECORD_CLIENT_UNAVAILABLE when not a single write got an
            answer from the record service; ``error.result`` holds the
            per-SKU errors
    """
    result = ReconcileResult(
        product_id=product_id,
        operation="stock",
        shortfall=plan.shortfall,
        requested_total=plan.desired_total,
        previous_total=plan.current_total,
    )

    for planned in plan.updates:
        sku = planned.sku
        try:
            client.update_sku(sku.id, {"stock": planned.new_stock})
        except TallyError as e:
            logger.warning(
                f"Stock update failed for SKU {sku.id}: {e}",
                extra={"product_id": product_id, "sku_id": sku.id, "code": e.code},
            )
            result.errors.append(SkuUpdateError(sku.id, str(e), e.code))
            continue

        result.updated_count += 1
        result.applied.append(
            AppliedUpdate(sku.id, "stock", sku.stock, planned.new_stock)
        )

    if result.unreachable:
        logger.error(
            f"Record service unreachable during stock pass for product {product_id}",
            extra={"product_id": product_id, "errors": len(result.errors)},
        )
        raise TallyError(
            "RECORD_CLIENT_UNAVAILABLE",
            result=result,
            product_id=product_id,
            operation="stock",
            updated_count=0,
        )

    if result.shortfall:
        logger.warning(
            f"Stock reduction for product {product_id} fell short by {result.shortfall}",
            extra={"product_id": product_id, "shortfall": result.shortfall},
        )

    return result


def reconcile_stock(
    client: RecordClient,
    product_id: str,
    desired_total_stock,
    *,
    skus: list[SkuRecord] | None = None,
    limit: int | None = None,
) -> ReconcileResult:
    """
    Bring the SKU stock of a product in line with ``desired_total_stock``.

    Pass ``skus`` to reuse a snapshot the caller already loaded.
    """
    if skus is None:
        skus = load_snapshot(client, product_id, limit)

    plan = plan_stock_updates(skus, desired_total_stock)

    if plan.is_noop:
        logger.debug(
            f"Stock already consistent for product {product_id}",
            extra={
                "product_id": product_id,
                "sku_count": len(skus),
                "total": plan.current_total,
            },
        )
        return ReconcileResult(
            product_id=product_id,
            operation="stock",
            requested_total=plan.desired_total,
            previous_total=plan.current_total,
            skipped="EMPTY_SNAPSHOT" if not skus else None,
        )

    result = apply_stock_plan(client, product_id, plan)

    logger.info(
        f"Reconciled stock for product {product_id}: "
        f"{plan.current_total} -> {plan.desired_total} ({result.updated_count} SKUs)",
        extra={
            "product_id": product_id,
            "delta": plan.delta,
            "updated": result.updated_count,
            "errors": len(result.errors),
        },
    )
    return result
