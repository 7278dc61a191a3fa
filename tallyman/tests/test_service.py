"""
Tests for the reconciliation orchestrator (tallyman.service.Tally).

Covers:
- Combined price + stock reconciliation over one snapshot
- Product lease (LOCK_NOT_ACQUIRED, release on failure)
- Compensation of failed stock passes
- Signals and audit logging
- Product workflow (edit, create, archive) and stock status
"""

import logging
from decimal import Decimal
import pytest

from tallyman.adapters.locks import CacheLock
from tallyman.adapters.memory import InMemoryRecordClient
from tallyman.conf import get_record_client
from tallyman.exceptions import TallyError
from tallyman.results import ReconciliationState
from tallyman.service import Tally
from tallyman.signals import price_propagated, reconciliation_finished, stock_reconciled


class OfflineOnWrite(InMemoryRecordClient):
    """Reads work; the service disappears on the first SKU write."""

    def update_sku(self, sku_id, fields):
        self.offline = True
        return super().update_sku(sku_id, fields)


class PriceWritesTimeOut(InMemoryRecordClient):
    """Every price write times out; stock writes land."""

    def update_sku(self, sku_id, fields):
        if "price" in fields:
            self._record_call("update_sku", sku_id, dict(fields))
            raise TallyError("RECORD_CLIENT_UNAVAILABLE", sku_id=sku_id, reason="timed out")
        return super().update_sku(sku_id, fields)


def seed(client, *stocks, price=39):
    client.add_product("p1", name="Tee", basePrice=price, minStock=10, totalStock=sum(stocks))
    for index, stock in enumerate(stocks):
        client.add_sku(
            chr(ord("A") + index),
            productId="p1",
            sku=f"TEE-{index}",
            price=price,
            stock=stock,
            createdAt=f"2024-01-01T10:0{index}:00Z",
        )
    return client


# ═══════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════


@pytest.fixture
def client():
    return seed(InMemoryRecordClient(), 5, 5, 5)


@pytest.fixture
def received():
    """(signal, kwargs) for every tallyman signal sent during the test."""
    sent = []

    def _receiver(sender, signal, **kwargs):
        sent.append((signal, kwargs))

    signals = (price_propagated, stock_reconciled, reconciliation_finished)
    for signal in signals:
        signal.connect(_receiver, weak=False)
    yield sent
    for signal in signals:
        signal.disconnect(_receiver)


@pytest.fixture
def compensate(settings):
    settings.TALLYMAN = {**settings.TALLYMAN, "COMPENSATE_ON_ERROR": True}


# ═══════════════════════════════════════════════════════════════════
# Reconcile
# ═══════════════════════════════════════════════════════════════════


class TestReconcile:
    """Tally.reconcile()"""

    def test_price_and_stock(self, client):
        report = Tally.reconcile("p1", total_stock=7, base_price="49.99", client=client)

        assert report.state == ReconciliationState.DONE
        assert report.success
        assert report.price.updated_count == 3
        assert report.stock.updated_count == 2
        assert report.updated_count == 5
        assert client.total_stock("p1") == 7
        assert {s["price"] for s in client.skus.values()} == {Decimal("49.99")}

    def test_one_snapshot_for_both_passes(self, client):
        Tally.reconcile("p1", total_stock=20, base_price=45, client=client)

        assert len(client.calls_to("list_skus_by_product")) == 1

    def test_price_goes_first(self, client):
        Tally.reconcile("p1", total_stock=20, base_price=45, client=client)

        writes = [c[2] for c in client.calls_to("update_sku")]
        assert all("price" in w for w in writes[:3])
        assert writes[3] == {"stock": 10}

    def test_stock_only(self, client):
        report = Tally.reconcile("p1", total_stock=15, client=client)

        assert report.price is None
        assert report.stock.updated_count == 0
        assert report.state == ReconciliationState.DONE

    def test_invalid_price_skips_everything(self, client):
        report = Tally.reconcile("p1", base_price=-5, client=client)

        assert client.calls == []
        assert report.price.skipped == "INVALID_PRICE"
        assert report.state == ReconciliationState.DONE

    def test_invalid_price_still_reconciles_stock(self, client):
        report = Tally.reconcile("p1", total_stock=3, base_price="nan", client=client)

        assert report.price.skipped == "INVALID_PRICE"
        assert report.stock.updated_count == 3
        assert all("price" not in c[2] for c in client.calls_to("update_sku"))

    def test_nothing_requested(self, client):
        report = Tally.reconcile("p1", client=client)

        assert report.state == ReconciliationState.DONE
        assert client.calls == []

    def test_failed_sku_means_done_with_errors(self, client):
        client.fail_skus.add("C")

        report = Tally.reconcile("p1", total_stock=7, client=client)

        assert report.state == ReconciliationState.DONE_WITH_ERRORS
        assert not report.success
        assert report.failed_count == 1

    def test_price_failures_do_not_stop_stock(self, client):
        client.fail_skus.add("B")

        report = Tally.reconcile("p1", total_stock=20, base_price=45, client=client)

        assert report.price.has_errors
        assert report.stock.updated_count == 1
        assert client.skus["A"]["stock"] == 10

    def test_timed_out_sku_does_not_stop_stock_pass(self, client):
        client.unreachable_skus.add("C")

        report = Tally.reconcile("p1", total_stock=3, client=client)

        assert report.state == ReconciliationState.DONE_WITH_ERRORS
        assert [(e.sku_id, e.code) for e in report.stock.errors] == [
            ("C", "RECORD_CLIENT_UNAVAILABLE")
        ]
        assert client.skus["B"]["stock"] == 0
        assert client.skus["A"]["stock"] == 3

    def test_timed_out_price_write_does_not_stop_stock_pass(self, client):
        client.unreachable_skus.add("B")

        report = Tally.reconcile("p1", total_stock=3, base_price="9", client=client)

        assert [e.sku_id for e in report.price.errors] == ["B"]
        assert report.stock.updated_count == 2
        assert client.skus["A"]["stock"] == 3
        assert client.skus["C"]["stock"] == 0

    def test_unreachable_price_pass_does_not_stop_stock_pass(self):
        client = seed(PriceWritesTimeOut(), 5, 5, 5)

        report = Tally.reconcile("p1", total_stock=7, base_price="9", client=client)

        assert report.price.unreachable
        assert report.price.updated_count == 0
        assert report.stock.updated_count == 2
        assert client.total_stock("p1") == 7
        assert report.state == ReconciliationState.DONE_WITH_ERRORS

    def test_unreachable_stock_pass_raises(self):
        client = seed(OfflineOnWrite(), 5, 5)

        with pytest.raises(TallyError) as exc:
            Tally.reconcile("p1", total_stock=0, client=client)

        assert exc.value.code == "RECORD_CLIENT_UNAVAILABLE"
        assert exc.value.details["updated_count"] == 0
        assert exc.value.result.operation == "stock"
        assert [e.sku_id for e in exc.value.result.errors] == ["B", "A"]

    def test_unreachable_stock_pass_still_reported(self, received):
        client = seed(OfflineOnWrite(), 5, 5)

        with pytest.raises(TallyError) as exc:
            Tally.reconcile("p1", total_stock=0, client=client)

        assert [s for s, _ in received] == [stock_reconciled]
        assert received[0][1]["result"] is exc.value.result

    def test_missing_product_is_empty_snapshot(self):
        report = Tally.reconcile("ghost", total_stock=5, client=InMemoryRecordClient())

        assert report.stock.skipped == "EMPTY_SNAPSHOT"
        assert report.success

    def test_uses_configured_client(self):
        configured = seed(get_record_client(), 2, 2)

        report = Tally.reconcile("p1", total_stock=10)

        assert report.stock.updated_count == 1
        assert configured.skus["A"]["stock"] == 8

    def test_report_as_dict(self, client):
        data = Tally.reconcile("p1", total_stock=7, base_price=45, client=client).as_dict()

        assert data["state"] == "done"
        assert data["price"]["updated_count"] == 3
        assert data["stock"]["achieved_total"] == 7
        assert data["compensated"] == []


class TestSinglePasses:
    """Tally.reconcile_stock() / Tally.propagate_price()"""

    def test_reconcile_stock(self, client):
        result = Tally.reconcile_stock("p1", 3, client=client)

        assert result.operation == "stock"
        assert client.total_stock("p1") == 3
        assert client.calls_to("update_sku")[0][1] == "C"

    def test_propagate_price(self, client):
        result = Tally.propagate_price("p1", 49.99, client=client)

        assert result.operation == "price"
        assert len(client.calls_to("update_sku")) == 3

    def test_propagate_invalid_price(self, client):
        result = Tally.propagate_price("p1", float("nan"), client=client)

        assert result.skipped == "INVALID_PRICE"
        assert client.calls_to("update_sku") == []


# ═══════════════════════════════════════════════════════════════════
# Locking
# ═══════════════════════════════════════════════════════════════════


class TestLocking:
    """One reconciliation per product at a time."""

    def test_held_lease_rejects(self, client):
        CacheLock().acquire("product:p1", 30)

        with pytest.raises(TallyError) as exc:
            Tally.reconcile("p1", total_stock=0, client=client)

        assert exc.value.code == "LOCK_NOT_ACQUIRED"
        assert client.calls == []

    def test_other_products_not_blocked(self, client):
        CacheLock().acquire("product:other", 30)

        report = Tally.reconcile("p1", total_stock=0, client=client)

        assert report.success

    def test_released_after_success(self, client):
        Tally.reconcile("p1", total_stock=0, client=client)

        assert CacheLock().acquire("product:p1", 30) is not None

    def test_released_after_failure(self):
        client = seed(OfflineOnWrite(), 5)

        with pytest.raises(TallyError):
            Tally.reconcile("p1", total_stock=0, client=client)

        assert CacheLock().acquire("product:p1", 30) is not None

    def test_invalid_price_takes_no_lease(self, client):
        CacheLock().acquire("product:p1", 30)

        report = Tally.reconcile("p1", base_price=-1, client=client)

        assert report.price.skipped == "INVALID_PRICE"

    def test_locking_disabled(self, client, settings):
        settings.TALLYMAN = {**settings.TALLYMAN, "LOCK_BACKEND": None}
        CacheLock().acquire("product:p1", 30)

        report = Tally.reconcile("p1", total_stock=0, client=client)

        assert report.success


# ═══════════════════════════════════════════════════════════════════
# Compensation
# ═══════════════════════════════════════════════════════════════════


class TestCompensation:
    """Rolling back a failed stock pass."""

    def test_off_by_default(self, client):
        client.fail_skus.add("C")

        report = Tally.reconcile("p1", total_stock=7, client=client)

        assert report.compensated == []
        assert client.skus["B"]["stock"] == 2

    def test_reverts_landed_writes(self, client, compensate):
        client.fail_skus.add("C")

        report = Tally.reconcile("p1", total_stock=7, client=client)

        assert [u.sku_id for u in report.compensated] == ["B"]
        assert client.skus["B"]["stock"] == 5
        assert client.total_stock("p1") == 15
        assert report.state == ReconciliationState.DONE_WITH_ERRORS
        assert report.as_dict()["compensated"] == [
            {"sku_id": "B", "field": "stock", "restored": 5}
        ]

    def test_reverts_writes_landed_around_a_timeout(self, client, compensate):
        client.unreachable_skus.add("C")

        report = Tally.reconcile("p1", total_stock=7, client=client)

        assert [e.code for e in report.stock.errors] == ["RECORD_CLIENT_UNAVAILABLE"]
        assert [u.sku_id for u in report.compensated] == ["B"]
        assert client.total_stock("p1") == 15

    def test_successful_pass_not_reverted(self, client, compensate):
        report = Tally.reconcile("p1", total_stock=7, client=client)

        assert report.compensated == []
        assert client.total_stock("p1") == 7

    def test_explicit_revert(self, client):
        report = Tally.reconcile("p1", total_stock=20, base_price=45, client=client)

        reverted, errors = Tally.revert(report.price, client=client)

        assert len(reverted) == 3
        assert errors == []
        assert {s["price"] for s in client.skus.values()} == {Decimal("39")}


# ═══════════════════════════════════════════════════════════════════
# Signals
# ═══════════════════════════════════════════════════════════════════


class TestSignals:
    """Signals sent after each pass and at the end."""

    def test_sent_per_pass(self, client, received):
        report = Tally.reconcile("p1", total_stock=7, base_price=45, client=client)

        assert [s for s, _ in received] == [
            price_propagated,
            stock_reconciled,
            reconciliation_finished,
        ]
        assert received[0][1]["result"] is report.price
        assert received[1][1]["result"] is report.stock
        assert received[2][1]["report"] is report
        assert received[2][1]["product_id"] == "p1"

    def test_finished_sent_for_stock_only(self, client, received):
        Tally.reconcile("p1", total_stock=7, client=client)

        assert [s for s, _ in received] == [stock_reconciled, reconciliation_finished]

    def test_not_sent_when_lock_held(self, client, received):
        CacheLock().acquire("product:p1", 30)

        with pytest.raises(TallyError):
            Tally.reconcile("p1", total_stock=0, client=client)

        assert received == []


class TestAuditLog:
    """tallyman.audit logger."""

    def test_success_logged_as_info(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="tallyman.audit"):
            Tally.reconcile("p1", total_stock=7, client=client)

        record = [r for r in caplog.records if r.name == "tallyman.audit"][-1]
        assert record.levelno == logging.INFO
        assert record.state == "done"

    def test_errors_logged_as_warning(self, client, caplog):
        client.fail_skus.add("C")

        with caplog.at_level(logging.INFO, logger="tallyman.audit"):
            Tally.reconcile("p1", total_stock=7, client=client)

        record = [r for r in caplog.records if r.name == "tallyman.audit"][-1]
        assert record.levelno == logging.WARNING
        assert record.failed_skus == ["C"]


# ═══════════════════════════════════════════════════════════════════
# Product workflow
# ═══════════════════════════════════════════════════════════════════


class TestEditProduct:
    """Tally.edit_product()"""

    def test_changed_price_propagates(self, client):
        product, report = Tally.edit_product("p1", base_price="52.00", client=client)

        assert product["basePrice"] == Decimal("52.00")
        assert report.price.updated_count == 3
        assert {s["price"] for s in client.skus.values()} == {Decimal("52.00")}

    def test_unchanged_price_not_propagated(self, client):
        _, report = Tally.edit_product("p1", base_price="39.00", client=client)

        assert report.price is None
        assert client.calls_to("update_sku") == []

    def test_total_stock_reconciled(self, client):
        product, report = Tally.edit_product("p1", total_stock=9, min_stock=4, client=client)

        assert product["minStock"] == 4
        assert report.stock.updated_count == 2
        assert client.total_stock("p1") == 9

    def test_other_fields_pass_through(self, client):
        product, _ = Tally.edit_product("p1", name="Long Tee", client=client)

        assert product["name"] == "Long Tee"
        assert client.calls_to("update_product")[0][2] == {"name": "Long Tee"}

    @pytest.mark.parametrize("field", ["base_price", "min_stock"])
    @pytest.mark.parametrize("value", [-1, "nan", "abc"])
    def test_invalid_input_writes_nothing(self, client, field, value):
        with pytest.raises(TallyError) as exc:
            Tally.edit_product("p1", client=client, **{field: value})

        assert exc.value.code == "INVALID_INPUT"
        assert exc.value.details["field"] == field
        assert client.calls == []

    def test_missing_product(self, client):
        with pytest.raises(TallyError) as exc:
            Tally.edit_product("ghost", base_price=10, client=client)

        assert exc.value.code == "RECORD_NOT_FOUND"


class TestCreateProduct:
    """Tally.create_product()"""

    def test_creates_initial_sku(self, client):
        product = Tally.create_product(
            "Hoodie",
            base_price="89.90",
            initial_stock=12,
            attributes={"size": "M"},
            client=client,
        )

        skus = [s for s in client.skus.values() if s["productId"] == product["_id"]]
        assert len(skus) == 1
        assert skus[0]["stock"] == 12
        assert skus[0]["attributes"] == {"size": "M"}
        assert product["minStock"] == 10
        assert product["totalStock"] == 12

    def test_payload(self, client):
        Tally.create_product("Cap", base_price=15, min_stock=2, client=client)

        payload = client.calls_to("create_product")[0][1]
        assert payload == {
            "name": "Cap",
            "basePrice": Decimal("15"),
            "minStock": 2,
            "initialStock": 0,
        }

    @pytest.mark.parametrize(
        "kwargs",
        [{"base_price": -3}, {"min_stock": "inf"}, {"initial_stock": -1}],
    )
    def test_invalid_input(self, client, kwargs):
        with pytest.raises(TallyError) as exc:
            Tally.create_product("Cap", client=client, **kwargs)

        assert exc.value.code == "INVALID_INPUT"
        assert client.calls_to("create_product") == []


class TestArchiveProduct:
    """Tally.archive_product()"""

    def test_retain_keeps_stock(self, client):
        report = Tally.archive_product("p1", client=client)

        assert report is None
        assert client.products["p1"]["isArchived"] is True
        assert client.total_stock("p1") == 15

    def test_deplete_drains_first(self, client):
        report = Tally.archive_product("p1", policy="deplete", client=client)

        assert report.success
        assert client.total_stock("p1") == 0
        assert client.products["p1"]["isArchived"] is True

    def test_deplete_from_settings(self, client, settings):
        settings.TALLYMAN = {**settings.TALLYMAN, "ARCHIVE_SKU_POLICY": "deplete"}

        Tally.archive_product("p1", client=client)

        assert client.total_stock("p1") == 0

    def test_deplete_failure_keeps_product(self, client):
        client.fail_skus.add("A")

        with pytest.raises(TallyError) as exc:
            Tally.archive_product("p1", policy="deplete", client=client)

        assert exc.value.code == "SKUS_NOT_DEPLETED"
        assert exc.value.details["failed"] == 1
        assert client.products["p1"]["isArchived"] is False


# ═══════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════


class TestQueries:
    """Tally.load_snapshot() / Tally.stock_status()"""

    def test_load_snapshot(self, client):
        skus = Tally.load_snapshot("p1", client=client)

        assert [s.id for s in skus] == ["A", "B", "C"]
        assert all(s.stock == 5 for s in skus)

    def test_stock_status(self, client):
        client.products["p1"]["totalStock"] = 18

        status = Tally.stock_status("p1", client=client)

        assert status.total_stock == 15
        assert status.recorded_total == 18
        assert status.drift == 3
        assert status.sku_count == 3
        assert not status.below_min_stock

    def test_below_min_stock(self, client):
        Tally.reconcile("p1", total_stock=4, client=client)

        assert Tally.stock_status("p1", client=client).below_min_stock
