"""
Tallyman Service - Reconciliation orchestrator.

Sequences lock → snapshot → price pass → stock pass for one product and
reports per-SKU outcomes. Stateless across invocations: every call loads a
fresh snapshot from the record service.

Usage:
    from tallyman import tally, TallyError

    report = tally.reconcile("42", total_stock=120, base_price="49.99")
    if not report.success:
        for error in report.stock.errors:
            print(f"{error.sku_id}: {error.error}")

    # Single passes
    tally.reconcile_stock("42", 120)
    tally.propagate_price("42", "49.99")

    # Product edit workflow (update product, then reconcile)
    product, report = tally.edit_product("42", base_price="52.00", total_stock=90)
"""

import logging

from tallyman.conf import (
    get_archive_policy,
    get_lock_backend,
    get_record_client,
    get_setting,
)
from tallyman.exceptions import TallyError
from tallyman.protocols.records import ProductRecord, RecordClient, SkuRecord
from tallyman.results import (
    AppliedUpdate,
    ReconcileResult,
    ReconciliationReport,
    ReconciliationState,
    SkuUpdateError,
    StockStatus,
)
from tallyman.services.compensation import revert_applied
from tallyman.services.price import propagate_price
from tallyman.services.snapshot import coerce_price, load_snapshot
from tallyman.services.stock import reconcile_stock
from tallyman.signals import (
    price_propagated,
    reconciliation_finished,
    stock_reconciled,
)

logger = logging.getLogger(__name__)


def _non_negative(field_name: str, value):
    number = coerce_price(value)
    if number is None:
        raise TallyError("INVALID_INPUT", field=field_name, value=str(value))
    return number


class Tally:
    """
    Main API for Tallyman.

    All methods are classmethods; ``client`` overrides the configured
    RECORD_CLIENT for a single call.
    """

    # ══════════════════════════════════════════════════════════════
    # RECONCILIATION
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def reconcile(
        cls,
        product_id: str,
        total_stock=None,
        base_price=None,
        *,
        client: RecordClient | None = None,
    ) -> ReconciliationReport:
        """
        Reconcile a product's SKUs with its aggregate stock and/or price.

        Price goes first; its failures, even a price pass that never reached
        the record service, do not stop the stock pass. A stock pass in which
        no write got an answer raises after compensation has run; the
        partial result is on ``error.result``.
        Both passes share one snapshot, taken under the product lease.

        Args:
            product_id: Product to reconcile
            total_stock: Desired aggregate stock (None = leave stock alone)
            base_price: Price every SKU should carry (None = leave prices alone)

        Returns:
            ReconciliationReport in state DONE or DONE_WITH_ERRORS

        Raises:
            TallyError: LOCK_NOT_ACQUIRED, a snapshot load failure, or
                RECORD_CLIENT_UNAVAILABLE when the stock pass got no answer
        """
        client = client or get_record_client()
        report = ReconciliationReport(product_id=product_id)

        want_price = base_price is not None
        want_stock = total_stock is not None

        if want_price and coerce_price(base_price) is None:
            report.price = propagate_price(client, product_id, base_price)
            want_price = False

        if want_price or want_stock:
            report.state = ReconciliationState.LOCKING
            token = cls._acquire(product_id)
            try:
                report.state = ReconciliationState.LOADING_SNAPSHOT
                skus = load_snapshot(client, product_id)

                if want_price and want_stock:
                    report.state = ReconciliationState.BOTH
                elif want_price:
                    report.state = ReconciliationState.PRICE_APPLY
                else:
                    report.state = ReconciliationState.STOCK_APPLY

                if want_price:
                    try:
                        report.price = propagate_price(
                            client, product_id, base_price, skus=skus
                        )
                    except TallyError as e:
                        if e.result is None:
                            raise
                        report.price = e.result
                    price_propagated.send(
                        sender=cls, product_id=product_id, result=report.price
                    )

                if want_stock:
                    aborted = None
                    try:
                        report.stock = reconcile_stock(
                            client, product_id, total_stock, skus=skus
                        )
                    except TallyError as e:
                        if e.result is None:
                            raise
                        report.stock = e.result
                        aborted = e
                    stock_reconciled.send(
                        sender=cls, product_id=product_id, result=report.stock
                    )

                    if report.stock.has_errors and get_setting("COMPENSATE_ON_ERROR"):
                        report.compensated, _ = revert_applied(
                            client, report.stock.applied
                        )
                    if aborted is not None:
                        raise aborted
            finally:
                cls._release(product_id, token)

        passes = [r for r in (report.price, report.stock) if r is not None]
        if all(r.success for r in passes):
            report.state = ReconciliationState.DONE
        else:
            report.state = ReconciliationState.DONE_WITH_ERRORS

        reconciliation_finished.send(sender=cls, product_id=product_id, report=report)
        return report

    @classmethod
    def reconcile_stock(
        cls,
        product_id: str,
        desired_total_stock,
        *,
        client: RecordClient | None = None,
    ) -> ReconcileResult:
        """Stock pass only. Invalid ``desired_total_stock`` counts as 0."""
        report = cls.reconcile(product_id, total_stock=desired_total_stock, client=client)
        return report.stock

    @classmethod
    def propagate_price(
        cls,
        product_id: str,
        new_price,
        *,
        client: RecordClient | None = None,
    ) -> ReconcileResult:
        """Price pass only. An invalid price issues no calls at all."""
        report = cls.reconcile(product_id, base_price=new_price, client=client)
        return report.price

    @classmethod
    def revert(
        cls,
        result: ReconcileResult,
        *,
        client: RecordClient | None = None,
    ) -> tuple[list[AppliedUpdate], list[SkuUpdateError]]:
        """
        Undo the writes of a finished pass (compensation log).

        Returns:
            (reverted updates, failed reverts)
        """
        client = client or get_record_client()
        return revert_applied(client, result.applied)

    # ══════════════════════════════════════════════════════════════
    # PRODUCT WORKFLOW
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def edit_product(
        cls,
        product_id: str,
        *,
        base_price=None,
        min_stock=None,
        total_stock=None,
        client: RecordClient | None = None,
        **fields,
    ) -> tuple[dict, ReconciliationReport]:
        """
        Save a product edit, then bring its SKUs in line.

        The price is only propagated when it actually changed; stock is
        reconciled whenever ``total_stock`` is given.

        Args:
            product_id: Product being edited
            base_price: New base price (finite, >= 0)
            min_stock: New reorder threshold (finite, >= 0)
            total_stock: Desired aggregate stock
            **fields: Other product fields passed through (name, category, ...)

        Returns:
            (updated product record, ReconciliationReport)

        Raises:
            TallyError: INVALID_INPUT before anything is written
        """
        client = client or get_record_client()

        payload = dict(fields)
        price = None
        if base_price is not None:
            price = _non_negative("base_price", base_price)
            payload["basePrice"] = price
        if min_stock is not None:
            payload["minStock"] = int(_non_negative("min_stock", min_stock))

        price_changed = False
        if price is not None:
            current = ProductRecord.from_record(client.get_product(product_id))
            price_changed = current.base_price != price

        if payload:
            product = client.update_product(product_id, payload)
        else:
            product = client.get_product(product_id)

        logger.info(
            f"Edited product {product_id}",
            extra={
                "product_id": product_id,
                "fields": sorted(payload),
                "price_changed": price_changed,
            },
        )

        report = cls.reconcile(
            product_id,
            total_stock=total_stock,
            base_price=price if price_changed else None,
            client=client,
        )
        return product, report

    @classmethod
    def create_product(
        cls,
        name: str,
        *,
        base_price=0,
        min_stock=10,
        initial_stock=0,
        attributes: dict[str, str] | None = None,
        client: RecordClient | None = None,
        **fields,
    ) -> dict:
        """
        Create a product; the record service creates its initial SKU
        carrying ``initial_stock``.

        Raises:
            TallyError: INVALID_INPUT for a negative or non-finite number
        """
        client = client or get_record_client()

        payload = {
            "name": name,
            **fields,
            "basePrice": _non_negative("base_price", base_price),
            "minStock": int(_non_negative("min_stock", min_stock)),
            "initialStock": int(_non_negative("initial_stock", initial_stock)),
        }
        if attributes:
            payload["attributes"] = {str(k): str(v) for k, v in attributes.items()}

        product = client.create_product(payload)

        logger.info(
            f"Created product {name}",
            extra={"product": name, "initial_stock": payload["initialStock"]},
        )
        return product

    @classmethod
    def archive_product(
        cls,
        product_id: str,
        *,
        policy: str | None = None,
        client: RecordClient | None = None,
    ) -> ReconciliationReport | None:
        """
        Soft-delete a product according to ARCHIVE_SKU_POLICY.

        "retain": archive only, SKUs keep their stock.
        "deplete": reconcile stock to 0 first; the product is archived
        only if every SKU reached 0.

        Returns:
            The depletion report, or None for "retain"

        Raises:
            TallyError: SKUS_NOT_DEPLETED when depletion had errors
        """
        client = client or get_record_client()
        policy = policy or get_archive_policy()

        report = None
        if policy == "deplete":
            report = cls.reconcile(product_id, total_stock=0, client=client)
            if not report.success:
                raise TallyError(
                    "SKUS_NOT_DEPLETED",
                    product_id=product_id,
                    failed=report.failed_count,
                )

        client.archive_product(product_id)
        logger.info(
            f"Archived product {product_id}",
            extra={"product_id": product_id, "policy": policy},
        )
        return report

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def load_snapshot(
        cls, product_id: str, *, client: RecordClient | None = None
    ) -> list[SkuRecord]:
        """Current SKUs of a product, normalised."""
        return load_snapshot(client or get_record_client(), product_id)

    @classmethod
    def stock_status(
        cls, product_id: str, *, client: RecordClient | None = None
    ) -> StockStatus:
        """Authoritative SKU total next to the product's recorded total."""
        client = client or get_record_client()
        product = ProductRecord.from_record(client.get_product(product_id))
        skus = load_snapshot(client, product_id)
        return StockStatus(
            product_id=product_id,
            total_stock=sum(sku.stock for sku in skus),
            recorded_total=product.total_stock,
            min_stock=product.min_stock,
            sku_count=len(skus),
        )

    # ══════════════════════════════════════════════════════════════
    # INTERNALS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def _acquire(cls, product_id: str) -> str | None:
        backend = get_lock_backend()
        if backend is None:
            return None

        token = backend.acquire(f"product:{product_id}", get_setting("LOCK_TIMEOUT"))
        if token is None:
            logger.warning(
                f"Product {product_id} is being reconciled by someone else",
                extra={"product_id": product_id},
            )
            raise TallyError("LOCK_NOT_ACQUIRED", product_id=product_id)
        return token

    @classmethod
    def _release(cls, product_id: str, token: str | None) -> None:
        if token is None:
            return
        backend = get_lock_backend()
        if backend is not None:
            backend.release(f"product:{product_id}", token)
