"""
Compensation for passes that finished with errors.

The record service has no transactions, so every successful write of a
pass is logged as an AppliedUpdate. Reverting re-applies the previous
values newest write first. This is best effort: a revert write can fail
too, and is then reported instead of retried.
"""

import logging

from tallyman.exceptions import TallyError
from tallyman.protocols.records import RecordClient
from tallyman.results import AppliedUpdate, SkuUpdateError

logger = logging.getLogger(__name__)


def revert_applied(
    client: RecordClient, applied: list[AppliedUpdate]
) -> tuple[list[AppliedUpdate], list[SkuUpdateError]]:
    """
    Undo ``applied`` in reverse order.

    Updates whose previous value is unknown (e.g. a SKU that had no price)
    are skipped.

    Returns:
        (reverted updates, failed reverts)
    """
    reverted = []
    errors = []

    for update in reversed(applied):
        if update.previous is None:
            continue
        try:
            client.update_sku(update.sku_id, {update.field: update.previous})
        except TallyError as e:
            logger.warning(
                f"Could not revert {update.field} on SKU {update.sku_id}: {e}",
                extra={"sku_id": update.sku_id, "field": update.field, "code": e.code},
            )
            errors.append(SkuUpdateError(update.sku_id, str(e), e.code))
            continue
        reverted.append(update)

    if reverted:
        logger.info(
            f"Reverted {len(reverted)} SKU writes",
            extra={"reverted": len(reverted), "errors": len(errors)},
        )
    return reverted, errors
