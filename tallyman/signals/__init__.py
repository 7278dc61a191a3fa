"""
Tallyman Signals.

Sent by the orchestrator after each pass so other apps can react
(refresh the denormalised product total, notify operators, audit).

Signals:
    price_propagated: Price pass finished
    stock_reconciled: Stock pass finished
    reconciliation_finished: Orchestrator reached a terminal state
"""

from django.dispatch import Signal

# Price pass finished (including no-ops)
# Args: product_id, result (ReconcileResult)
price_propagated = Signal()

# Stock pass finished (including no-ops)
# Args: product_id, result (ReconcileResult)
stock_reconciled = Signal()

# Orchestrator reached DONE or DONE_WITH_ERRORS
# Args: product_id, report (ReconciliationReport)
reconciliation_finished = Signal()

__all__ = ["price_propagated", "stock_reconciled", "reconciliation_finished"]
