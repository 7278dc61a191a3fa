"""
SKU snapshot loading and field normalisation.

The record service is loose about types: stock may arrive as a string,
null or garbage, timestamps as ISO strings or epoch milliseconds. Every
value is normalised here so the reconcilers only ever see clean SkuRecords.
"""

import logging
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal, InvalidOperation

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from tallyman.conf import get_setting
from tallyman.exceptions import TallyError
from tallyman.protocols.records import RecordClient, SkuRecord

logger = logging.getLogger(__name__)


def _to_decimal(value) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def coerce_stock(value) -> int:
    """
    Coerce a stock value to a non-negative integer.

    Missing, non-numeric, non-finite and negative values become 0.
    Fractions truncate toward zero.
    """
    number = _to_decimal(value)
    if number is None or number <= 0:
        return 0
    return int(number)


def coerce_price(value) -> Decimal | None:
    """Return a finite, non-negative Decimal or None."""
    number = _to_decimal(value)
    if number is None or number < 0:
        return None
    return number


def parse_created_at(value) -> datetime | None:
    """
    Parse a creation timestamp into an aware datetime.

    Accepts datetimes, dates, ISO-8601 strings and epoch milliseconds.
    Anything else returns None (the ordering policy treats it as epoch 0).
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    parsed = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float, Decimal)):
        try:
            parsed = datetime.fromtimestamp(float(value) / 1000, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = parse_datetime(text)
            if parsed is None:
                day = parse_date(text)
                if day is not None:
                    parsed = datetime(day.year, day.month, day.day)
        except ValueError:
            return None

    if parsed is None:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def coerce_attributes(value) -> dict[str, str]:
    """
    Normalise SKU attributes to an insertion-ordered str → str mapping.

    Accepts a mapping or the editor's list of {"key", "value"} rows;
    rows with a blank key are dropped.
    """
    if isinstance(value, dict):
        return {str(k): "" if v is None else str(v) for k, v in value.items()}

    if isinstance(value, list):
        attributes = {}
        for row in value:
            if not isinstance(row, dict):
                continue
            key = str(row.get("key") or "").strip()
            if key:
                attributes[key] = str(row.get("value") or "")
        return attributes

    return {}


def load_snapshot(
    client: RecordClient, product_id: str, limit: int | None = None
) -> list[SkuRecord]:
    """
    Load every SKU of a product.

    The page size must cover the whole SKU set; the result is treated as
    complete. An empty list means "nothing to reconcile", not an error.

    Raises:
        TallyError: INVALID_RESPONSE if the service returns something
            other than a list, or whatever the client raised
    """
    if limit is None:
        limit = get_setting("SKU_PAGE_SIZE")

    records = client.list_skus_by_product(product_id, limit)
    if not isinstance(records, list):
        raise TallyError(
            "INVALID_RESPONSE",
            product_id=product_id,
            expected="list",
            got=type(records).__name__,
        )

    skus = [SkuRecord.from_record(raw) for raw in records if isinstance(raw, dict)]

    if len(records) >= limit:
        logger.warning(
            f"Snapshot for product {product_id} filled the page ({limit}); "
            "SKUs beyond the limit are not reconciled",
            extra={"product_id": product_id, "limit": limit},
        )

    logger.debug(
        f"Loaded {len(skus)} SKUs for product {product_id}",
        extra={"product_id": product_id, "sku_count": len(skus)},
    )
    return skus
