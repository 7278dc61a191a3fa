"""
Django Tallyman - Headless stock/price reconciliation for SKU catalogs.

Keeps a product's aggregate stock and base price consistent with the SKU
records held by a remote record service.

Usage:
    from tallyman import tally, TallyError

    report = tally.reconcile("42", total_stock=120, base_price="49.99")

    if report.success:
        print(f"Updated {report.updated_count} SKUs")
    else:
        for error in report.stock.errors:
            print(f"Failed: {error.sku_id} - {error.error}")

Stock additions go to the oldest SKU; removals drain the newest SKUs first.
"""

from tallyman.exceptions import TallyError


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in ("tally", "Tally"):
        from tallyman.service import Tally

        return Tally
    if name == "ReconcileResult":
        from tallyman.results import ReconcileResult

        return ReconcileResult
    if name == "ReconciliationReport":
        from tallyman.results import ReconciliationReport

        return ReconciliationReport
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["tally", "Tally", "TallyError", "ReconcileResult", "ReconciliationReport"]
__version__ = "0.1.0"
