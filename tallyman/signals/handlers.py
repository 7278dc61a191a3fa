"""
Tallyman Signal Handlers.

Audit logging for finished reconciliations.

This module is imported in apps.py to register handlers.
"""

import logging

from django.dispatch import receiver

from tallyman.results import ReconciliationState
from tallyman.signals import reconciliation_finished

logger = logging.getLogger("tallyman.audit")


@receiver(reconciliation_finished)
def log_reconciliation_outcome(sender, product_id, report, **kwargs):
    """
    Leave one audit line per reconciliation.

    Operators must not be told the aggregate matches when a pass had
    errors or a shortfall, so those are logged at warning level with
    the failing SKU ids.
    """
    extra = {
        "product_id": product_id,
        "state": report.state.value,
        "updated": report.updated_count,
        "failed": report.failed_count,
    }

    if report.state == ReconciliationState.DONE:
        logger.info(
            f"Product {product_id} reconciled ({report.updated_count} SKUs updated)",
            extra=extra,
        )
        return

    failed_ids = [
        e.sku_id
        for result in (report.price, report.stock)
        if result is not None
        for e in result.errors
    ]
    shortfall = report.stock.shortfall if report.stock else 0
    logger.warning(
        f"Product {product_id} reconciled with errors: "
        f"{report.updated_count} updated, {report.failed_count} failed, shortfall {shortfall}",
        extra={**extra, "failed_skus": failed_ids, "shortfall": shortfall},
    )
