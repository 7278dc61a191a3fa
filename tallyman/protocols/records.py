"""
Record Client Protocol -- Interface for the remote Product/SKU record service.

Tallyman defines this protocol; the HTTP adapter (or any other store)
implements it. Records travel as plain dicts in the record service's own
shape (camelCase keys, ``_id``); the snapshot loader turns them into
SkuRecord / ProductRecord.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable


# ══════════════════════════════════════════════════════════════
# DATA TYPES
# ══════════════════════════════════════════════════════════════


def record_id(raw: dict) -> str:
    """Return the identifier of a raw record (``_id`` wins over ``id``)."""
    value = raw.get("_id", raw.get("id"))
    return "" if value is None else str(value)


@dataclass(frozen=True)
class SkuRecord:
    """Normalised SKU from a snapshot."""

    id: str
    product_id: str
    code: str = ""
    price: Decimal | None = None
    stock: int = 0
    created_at: datetime | None = None
    attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_record(cls, raw: dict) -> SkuRecord:
        """Build a SkuRecord from a raw record-service dict."""
        from tallyman.services.snapshot import (
            coerce_attributes,
            coerce_price,
            coerce_stock,
            parse_created_at,
        )

        return cls(
            id=record_id(raw),
            product_id=str(raw.get("productId") or raw.get("product_id") or ""),
            code=str(raw.get("sku") or ""),
            price=coerce_price(raw.get("price")),
            stock=coerce_stock(raw.get("stock")),
            created_at=parse_created_at(raw.get("createdAt", raw.get("created_at"))),
            attributes=coerce_attributes(raw.get("attributes")),
        )


@dataclass(frozen=True)
class ProductRecord:
    """Normalised Product."""

    id: str
    name: str = ""
    base_price: Decimal = Decimal("0")
    min_stock: int = 0
    total_stock: int = 0
    is_archived: bool = False

    @property
    def below_min_stock(self) -> bool:
        return self.total_stock < self.min_stock

    @classmethod
    def from_record(cls, raw: dict) -> ProductRecord:
        from tallyman.services.snapshot import coerce_price, coerce_stock

        return cls(
            id=record_id(raw),
            name=str(raw.get("name") or ""),
            base_price=coerce_price(raw.get("basePrice")) or Decimal("0"),
            min_stock=coerce_stock(raw.get("minStock")),
            total_stock=coerce_stock(raw.get("totalStock")),
            is_archived=bool(raw.get("isArchived", raw.get("archived", False))),
        )


# ══════════════════════════════════════════════════════════════
# PROTOCOL
# ══════════════════════════════════════════════════════════════


@runtime_checkable
class RecordClient(Protocol):
    """
    Interface for Tallyman to read and write Product/SKU records.

    Implementations:
        - HttpRecordClient: Talks to the record service over HTTP (httpx)
        - InMemoryRecordClient: Dict-backed store for development and tests

    Failures must be raised as TallyError:
        - RECORD_CLIENT_UNAVAILABLE when the service cannot be reached
        - RECORD_REJECTED / RECORD_NOT_FOUND when it answers with an error
    """

    def list_skus_by_product(self, product_id: str, limit: int) -> list[dict]:
        """
        List SKU records belonging to a product.

        Args:
            product_id: Owning product identifier
            limit: Page size; must cover every SKU of the product

        Returns:
            Raw SKU records (possibly empty)
        """
        ...

    def update_sku(self, sku_id: str, fields: dict[str, Any]) -> dict:
        """
        Partially update one SKU.

        Args:
            sku_id: SKU identifier
            fields: {"stock": int}, {"price": Decimal} or both

        Returns:
            The updated raw SKU record
        """
        ...

    def get_product(self, product_id: str) -> dict:
        """Fetch one product record."""
        ...

    def update_product(self, product_id: str, fields: dict[str, Any]) -> dict:
        """Partially update one product (caller workflow only)."""
        ...

    def create_product(self, fields: dict[str, Any]) -> dict:
        """Create a product; the service creates its initial SKU."""
        ...

    def archive_product(self, product_id: str) -> None:
        """Soft-delete a product."""
        ...
