"""
Price propagator.

Pushes a product's base price to every one of its SKUs. Writes are
independent of each other, so they are dispatched in parallel and every
one is attempted even when some fail.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from tallyman.conf import get_setting
from tallyman.exceptions import TallyError
from tallyman.protocols.records import RecordClient, SkuRecord
from tallyman.results import AppliedUpdate, ReconcileResult, SkuUpdateError
from tallyman.services.snapshot import coerce_price, load_snapshot

logger = logging.getLogger(__name__)


def propagate_price(
    client: RecordClient,
    product_id: str,
    new_price,
    *,
    skus: list[SkuRecord] | None = None,
    limit: int | None = None,
    max_workers: int | None = None,
) -> ReconcileResult:
    """
    Set ``price = new_price`` on every SKU of a product.

    An invalid price (negative, NaN, infinite, not a number) is a no-op:
    no snapshot is loaded and no write is issued.

    A write that fails, at the HTTP or the transport level, is reported in
    ``errors``; the other writes still land.

    Raises:
        TallyError: RECORD_CLIENT_UNAVAILABLE when no write got an answer
            from the record service; ``error.result`` holds the per-SKU errors
    """
    price = coerce_price(new_price)
    if price is None:
        logger.debug(
            f"Ignoring invalid price {new_price!r} for product {product_id}",
            extra={"product_id": product_id},
        )
        return ReconcileResult(
            product_id=product_id, operation="price", skipped="INVALID_PRICE"
        )

    if skus is None:
        skus = load_snapshot(client, product_id, limit)

    result = ReconcileResult(product_id=product_id, operation="price")
    if not skus:
        result.skipped = "EMPTY_SNAPSHOT"
        return result

    workers = max(1, min(max_workers or get_setting("PRICE_WORKERS"), len(skus)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            (sku, pool.submit(client.update_sku, sku.id, {"price": price}))
            for sku in skus
        ]
        outcomes = []
        for sku, future in futures:
            try:
                future.result()
            except TallyError as e:
                outcomes.append((sku, e))
            else:
                outcomes.append((sku, None))

    for sku, error in outcomes:
        if error is None:
            result.updated_count += 1
            result.applied.append(AppliedUpdate(sku.id, "price", sku.price, price))
        else:
            logger.warning(
                f"Price update failed for SKU {sku.id}: {error}",
                extra={"product_id": product_id, "sku_id": sku.id, "code": error.code},
            )
            result.errors.append(SkuUpdateError(sku.id, str(error), error.code))

    if result.unreachable:
        logger.error(
            f"Record service unreachable during price pass for product {product_id}",
            extra={"product_id": product_id, "errors": len(result.errors)},
        )
        raise TallyError(
            "RECORD_CLIENT_UNAVAILABLE",
            result=result,
            product_id=product_id,
            operation="price",
            updated_count=0,
        )

    logger.info(
        f"Propagated price {price} to {result.updated_count} SKUs of product {product_id}",
        extra={
            "product_id": product_id,
            "price": str(price),
            "updated": result.updated_count,
            "errors": len(result.errors),
        },
    )
    return result
