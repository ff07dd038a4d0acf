"""
Tests for document creation, editing, numbering and queries.
"""

from datetime import timedelta

import pytest

from doctrail.extensions import db
from doctrail.models import Document, DocumentLine, Vendor
from doctrail.services import document_service, inventory_service, lifecycle_service
from doctrail.services.document_errors import (
    AlreadyProcessed,
    DocumentNotFound,
    DocumentNotOwned,
    InsufficientStock,
    InvalidInput,
    InvalidTransition,
)
from doctrail.time_utils import utcnow
from doctrail.validation import ValidationError


class TestNumbering:
    def test_sequences_per_store_and_type(self, db_session, store_a, store_b):
        def number(store, seq):
            return document_service.next_document_number(store_id=store.id, document_type=seq, prefix="MEM")

        first = number(store_a, "memo")
        second = number(store_a, "memo")
        other_store = number(store_b, "memo")
        other_type = number(store_a, "repair")
        db_session.commit()

        assert first == f"MEM-{store_a.id:03d}-0001"
        assert second == f"MEM-{store_a.id:03d}-0002"
        assert other_store == f"MEM-{store_b.id:03d}-0001"
        assert other_type.endswith("-0001")

    def test_appraisals_have_their_own_prefix(self, db_session, make_repair):
        repair = make_repair()
        appraisal = make_repair(is_appraisal=True)

        assert repair.document_number.startswith("REP-")
        assert appraisal.document_number.startswith("APR-")
        assert appraisal.document_number.endswith("-0001")


class TestCreateDocument:
    def test_memo_draws_stock_and_computes_totals(self, db_session, store_a, unit_a, make_memo):
        memo = make_memo(quantities=(2,))

        assert memo.status == "pending"
        assert memo.document_number == f"MEM-{store_a.id:03d}-0001"
        assert memo.tenure_days == 30
        assert memo.tax_rate_bps == 800
        assert memo.subtotal_cents == 20000
        assert memo.tax_cents == 1600
        assert memo.total_cents == 21600

        line = memo.lines[0]
        assert line.sku == "RING-001"
        assert line.restock is True
        assert line.restocked is False
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 8

    def test_inline_vendor_is_created(self, db_session, store_a):
        memo = document_service.create_document(
            store_a.id,
            "memo",
            {"vendor": {"name": "New Vendor"}, "items": [{"title": "Loose stone", "quantity": 1, "unit_price_cents": 5000}]},
        )
        assert memo.vendor.name == "New Vendor"
        assert memo.vendor.store_id == store_a.id

    def test_insufficient_stock_leaves_nothing_behind(self, db_session, store_a, unit_a):
        with pytest.raises(InsufficientStock):
            document_service.create_document(
                store_a.id,
                "memo",
                {
                    "vendor": {"name": "Ghost Vendor"},
                    "items": [
                        {"inventory_unit_id": unit_a.id, "quantity": 4},
                        {"inventory_unit_id": unit_a.id, "quantity": 7},
                    ],
                },
            )

        assert db_session.query(Document).count() == 0
        assert db_session.query(Vendor).filter_by(name="Ghost Vendor").count() == 0
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

    def test_invalid_tenure(self, db_session, store_a, vendor_a):
        with pytest.raises(ValidationError):
            document_service.create_document(store_a.id, "memo", {"vendor_id": vendor_a.id, "tenure_days": 45})

    def test_vendor_from_other_store_is_rejected(self, db_session, store_a, store_b):
        foreign = Vendor(store_id=store_b.id, name="Elsewhere")
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(InvalidInput):
            document_service.create_document(store_a.id, "memo", {"vendor_id": foreign.id})

    def test_unknown_field_rejected(self, db_session, store_a):
        with pytest.raises(ValidationError):
            document_service.create_document(store_a.id, "memo", {"status": "archived"})

    def test_return_lines_do_not_draw_stock(self, db_session, store_a, customer_a, unit_a):
        ret = document_service.create_document(
            store_a.id,
            "return",
            {
                "customer_id": customer_a.id,
                "reason": "Wrong size",
                "items": [
                    {"inventory_unit_id": unit_a.id, "quantity": 1},
                    {"inventory_unit_id": unit_a.id, "quantity": 1, "restock": False, "condition": "damaged"},
                ],
            },
        )
        assert ret.document_number.startswith("RET-")
        assert [line.restock for line in ret.lines] == [True, False]
        assert ret.charge_taxes is False
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10


class TestLines:
    def test_add_update_remove_line(self, db_session, store_a, unit_a, make_memo):
        memo = make_memo(quantities=(1,))

        line = document_service.add_line(store_a.id, memo.id, {"inventory_unit_id": unit_a.id, "quantity": 2})
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 7

        document_service.update_line(store_a.id, memo.id, line.id, {"quantity": 5, "unit_price_cents": 9000})
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 4

        memo = db_session.get(Document, memo.id)
        assert memo.subtotal_cents == 10000 + 5 * 9000

        document_service.remove_line(store_a.id, memo.id, line.id)
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 9
        memo = db_session.get(Document, memo.id)
        assert len(memo.lines) == 1
        assert memo.subtotal_cents == 10000

    def test_quantity_increase_beyond_stock(self, db_session, store_a, unit_a, make_memo):
        memo = make_memo(quantities=(1,))
        line_id = memo.lines[0].id

        with pytest.raises(InsufficientStock):
            document_service.update_line(store_a.id, memo.id, line_id, {"quantity": 50})

        assert db_session.get(DocumentLine, line_id).quantity == 1
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 9

    def test_lines_frozen_after_send(self, db_session, store_a, unit_a, make_memo):
        memo = make_memo()
        assert lifecycle_service.send_to_counterparty(store_a.id, memo.id).ok

        with pytest.raises(InvalidTransition):
            document_service.add_line(store_a.id, memo.id, {"inventory_unit_id": unit_a.id, "quantity": 1})

    def test_bad_line_payload(self, db_session, store_a, make_memo):
        memo = make_memo()
        with pytest.raises(ValidationError):
            document_service.add_line(store_a.id, memo.id, {"title": "x", "quantity": 0})
        with pytest.raises(ValidationError):
            document_service.add_line(store_a.id, memo.id, {"title": "x", "quantity": 1, "restocked": True})

    def test_returned_line_is_final(self, db_session, store_a, unit_a, make_memo):
        memo = make_memo(quantities=(2,))
        line_id = memo.lines[0].id
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 8

        assert lifecycle_service.return_item(store_a.id, memo.id, line_id).ok
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

        with pytest.raises(AlreadyProcessed):
            document_service.update_line(store_a.id, memo.id, line_id, {"quantity": 5})
        assert db_session.get(DocumentLine, line_id).quantity == 2
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

        document_service.delete_document(store_a.id, memo.id)
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10


class TestAdjustments:
    def test_adjustments_recompute_totals(self, db_session, store_a, make_memo):
        memo = make_memo()
        memo = document_service.update_adjustments(
            store_a.id,
            memo.id,
            {"discount_value": 1000, "discount_unit": "percent", "shipping_cents": 500},
        )
        assert memo.discount_cents == 1000
        assert memo.tax_cents == 720
        assert memo.total_cents == 10000 - 1000 + 720 + 500

    def test_bad_unit(self, db_session, store_a, make_memo):
        memo = make_memo()
        with pytest.raises(ValidationError):
            document_service.update_adjustments(store_a.id, memo.id, {"service_fee_unit": "bananas"})


class TestDeleteAndQueries:
    def test_delete_pending_restocks(self, db_session, store_a, unit_a, make_memo):
        memo = make_memo(quantities=(3,))
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 7

        snapshot = document_service.delete_document(store_a.id, memo.id)

        assert snapshot["document_number"] == memo.document_number
        assert db_session.get(Document, snapshot["id"]) is None
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

    def test_delete_after_send_refused(self, db_session, store_a, make_memo):
        memo = make_memo()
        lifecycle_service.send_to_counterparty(store_a.id, memo.id)

        with pytest.raises(InvalidTransition):
            document_service.delete_document(store_a.id, memo.id)

    def test_tenant_isolation(self, db_session, store_a, store_b, make_memo):
        memo = make_memo()

        with pytest.raises(DocumentNotOwned):
            document_service.get_document(store_b.id, memo.id)
        with pytest.raises(DocumentNotFound):
            document_service.get_document(store_a.id, memo.id + 1000)
        with pytest.raises(DocumentNotFound):
            document_service.get_document(store_a.id, memo.id, kind="repairs")

        assert document_service.list_documents(store_b.id) == []

    def test_list_by_kind_and_status(self, db_session, store_a, make_memo, make_repair):
        memo = make_memo()
        make_repair()
        make_repair(is_appraisal=True)
        lifecycle_service.send_to_counterparty(store_a.id, memo.id)

        memos = document_service.list_documents(store_a.id, document_type="memo")
        appraisals = document_service.list_documents(store_a.id, document_type="repair", is_appraisal=True)
        sent = document_service.list_documents(store_a.id, status="sent_to_vendor")

        assert [d.id for d in memos] == [memo.id]
        assert len(appraisals) == 1
        assert [d.id for d in sent] == [memo.id]

    def test_overdue_memos(self, db_session, store_a, make_memo):
        old = make_memo(tenure_days=7)
        fresh = make_memo(tenure_days=60)
        for memo in (old, fresh):
            lifecycle_service.send_to_counterparty(store_a.id, memo.id)
            lifecycle_service.mark_received(store_a.id, memo.id)

        old = db_session.get(Document, old.id)
        old.created_at = utcnow() - timedelta(days=10)
        db_session.commit()

        overdue = document_service.list_overdue_memos(store_a.id)
        assert [d.id for d in overdue] == [old.id]
        assert overdue[0].is_overdue is True
