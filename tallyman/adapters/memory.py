"""
In-memory Record Client -- dict-backed RecordClient.

Use this adapter for development, demos or tests when the record service
is not available. Records are kept in the record service's own shape
(``_id``, ``productId``, camelCase fields).

Configuration:
    TALLYMAN = {
        "RECORD_CLIENT": "tallyman.adapters.memory.InMemoryRecordClient",
    }

Failure simulation:
    client.fail_skus.add("sku-2")   # update_sku("sku-2", ...) → RECORD_REJECTED
    client.unreachable_skus.add("sku-3")  # update_sku("sku-3", ...) → RECORD_CLIENT_UNAVAILABLE
    client.offline = True           # every call → RECORD_CLIENT_UNAVAILABLE
"""

from __future__ import annotations

import copy
import threading
import uuid
from typing import Any

from django.utils import timezone

from tallyman.exceptions import TallyError


class InMemoryRecordClient:
    """
    RecordClient implementation over two dicts.

    Every call is appended to ``calls`` as (method, *args) so tests can
    assert exactly which writes a pass issued.
    """

    def __init__(self, products: list[dict] | None = None, skus: list[dict] | None = None):
        self._lock = threading.Lock()
        self.products: dict[str, dict] = {}
        self.skus: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_skus: set[str] = set()
        self.unreachable_skus: set[str] = set()
        self.offline = False

        for product in products or []:
            self.add_product(**product)
        for sku in skus or []:
            self.add_sku(**sku)

    # ── seeding ──

    def add_product(self, _id: str | None = None, **fields: Any) -> dict:
        record = {
            "_id": _id or uuid.uuid4().hex,
            "name": "",
            "basePrice": 0,
            "minStock": 0,
            "totalStock": 0,
            "isArchived": False,
            **fields,
        }
        self.products[record["_id"]] = record
        return record

    def add_sku(self, _id: str | None = None, **fields: Any) -> dict:
        record = {
            "_id": _id or uuid.uuid4().hex,
            "productId": "",
            "sku": "",
            "price": 0,
            "stock": 0,
            "attributes": {},
            "createdAt": timezone.now().isoformat(),
            **fields,
        }
        self.skus[record["_id"]] = record
        return record

    # ── helpers ──

    def _record_call(self, *call) -> None:
        with self._lock:
            self.calls.append(call)
        if self.offline:
            raise TallyError("RECORD_CLIENT_UNAVAILABLE", call=call[0])

    def calls_to(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    def total_stock(self, product_id: str) -> int:
        return sum(
            int(s.get("stock") or 0)
            for s in self.skus.values()
            if s.get("productId") == product_id
        )

    def _refresh_total(self, product_id: str) -> None:
        product = self.products.get(product_id)
        if product is not None:
            product["totalStock"] = self.total_stock(product_id)

    # ── RecordClient ──

    def list_skus_by_product(self, product_id: str, limit: int) -> list[dict]:
        self._record_call("list_skus_by_product", product_id, limit)
        with self._lock:
            matches = [
                copy.deepcopy(s)
                for s in self.skus.values()
                if s.get("productId") == product_id
            ]
        return matches[:limit]

    def update_sku(self, sku_id: str, fields: dict[str, Any]) -> dict:
        self._record_call("update_sku", sku_id, dict(fields))
        if sku_id in self.unreachable_skus:
            raise TallyError("RECORD_CLIENT_UNAVAILABLE", sku_id=sku_id, reason="timed out")
        if sku_id in self.fail_skus:
            raise TallyError("RECORD_REJECTED", sku_id=sku_id, status=422)
        with self._lock:
            record = self.skus.get(sku_id)
            if record is None:
                raise TallyError("RECORD_NOT_FOUND", sku_id=sku_id, status=404)
            record.update(fields)
            self._refresh_total(record.get("productId"))
            return copy.deepcopy(record)

    def get_product(self, product_id: str) -> dict:
        self._record_call("get_product", product_id)
        record = self.products.get(product_id)
        if record is None:
            raise TallyError("RECORD_NOT_FOUND", product_id=product_id, status=404)
        return copy.deepcopy(record)

    def update_product(self, product_id: str, fields: dict[str, Any]) -> dict:
        self._record_call("update_product", product_id, dict(fields))
        with self._lock:
            record = self.products.get(product_id)
            if record is None:
                raise TallyError("RECORD_NOT_FOUND", product_id=product_id, status=404)
            record.update(fields)
            return copy.deepcopy(record)

    def create_product(self, fields: dict[str, Any]) -> dict:
        self._record_call("create_product", dict(fields))
        fields = dict(fields)
        initial_stock = int(fields.pop("initialStock", 0) or 0)
        attributes = fields.pop("attributes", {}) or {}
        with self._lock:
            product = self.add_product(**fields)
            self.add_sku(
                productId=product["_id"],
                sku=f"{product['_id'][:8].upper()}-001",
                price=product.get("basePrice", 0),
                stock=initial_stock,
                attributes=attributes,
            )
            self._refresh_total(product["_id"])
            return copy.deepcopy(product)

    def archive_product(self, product_id: str) -> None:
        self._record_call("archive_product", product_id)
        record = self.products.get(product_id)
        if record is None:
            raise TallyError("RECORD_NOT_FOUND", product_id=product_id, status=404)
        record["isArchived"] = True
