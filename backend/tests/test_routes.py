"""
Flask test-client tests for the document and lifecycle routes.
"""

import pytest

from doctrail.services import inventory_service


@pytest.fixture
def headers(store_a):
    return {"X-Store-Id": str(store_a.id), "X-User-Id": "42"}


def _create_memo(client, headers, vendor, unit, quantity=1):
    resp = client.post(
        "/api/documents/memos",
        json={
            "vendor_id": vendor.id,
            "tenure_days": 14,
            "items": [{"inventory_unit_id": unit.id, "quantity": quantity}],
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["document"]


class TestSystemRoutes:
    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"

    def test_store_header_required(self, client, db_session):
        resp = client.get("/api/documents/memos")
        assert resp.status_code == 400

    def test_unknown_store(self, client, db_session):
        resp = client.get("/api/documents/memos", headers={"X-Store-Id": "999999"})
        assert resp.status_code == 404


class TestDocumentRoutes:
    def test_create_get_and_list(self, client, db_session, headers, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)

        assert memo["status"] == "pending"
        assert memo["total_cents"] == 10800
        assert memo["lines"][0]["restock"] is True

        resp = client.get(f"/api/documents/memos/{memo['id']}", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["document"]["document_number"] == memo["document_number"]

        listed = client.get("/api/documents/memos", headers=headers).get_json()["documents"]
        assert [d["id"] for d in listed] == [memo["id"]]
        assert client.get("/api/documents/returns", headers=headers).get_json()["documents"] == []

    def test_unknown_kind(self, client, db_session, headers):
        resp = client.get("/api/documents/widgets", headers=headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"

    def test_validation_error(self, client, db_session, headers, vendor_a):
        resp = client.post(
            "/api/documents/memos",
            json={"vendor_id": vendor_a.id, "tenure_days": 5},
            headers=headers,
        )
        assert resp.status_code == 400
        assert "tenure_days" in resp.get_json()["error"]

    def test_insufficient_stock(self, client, db_session, headers, vendor_a, unit_a):
        resp = client.post(
            "/api/documents/memos",
            json={"vendor_id": vendor_a.id, "items": [{"inventory_unit_id": unit_a.id, "quantity": 99}]},
            headers=headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "insufficient_stock"

    def test_other_store_cannot_read(self, client, db_session, headers, store_b, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)

        resp = client.get(f"/api/documents/memos/{memo['id']}", headers={"X-Store-Id": str(store_b.id)})
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_owned"

    def test_lines_and_adjustments(self, client, db_session, headers, store_a, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)

        resp = client.post(
            f"/api/documents/memos/{memo['id']}/lines",
            json={"title": "Appraisal fee", "quantity": 1, "unit_price_cents": 2500, "charge_taxes": False},
            headers=headers,
        )
        assert resp.status_code == 201
        line_id = resp.get_json()["line"]["id"]
        assert resp.get_json()["document"]["subtotal_cents"] == 12500

        resp = client.patch(
            f"/api/documents/memos/{memo['id']}/adjustments",
            json={"shipping_cents": 1000},
            headers=headers,
        )
        assert resp.get_json()["document"]["total_cents"] == 12500 + 800 + 1000

        resp = client.delete(f"/api/documents/memos/{memo['id']}/lines/{line_id}", headers=headers)
        assert resp.status_code == 200
        assert len(resp.get_json()["document"]["lines"]) == 1

    def test_delete_restocks(self, client, db_session, headers, store_a, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a, quantity=4)
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 6

        resp = client.delete(f"/api/documents/memos/{memo['id']}", headers=headers)

        assert resp.status_code == 200
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

    def test_status_override_and_actions(self, client, db_session, headers, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)
        base = f"/api/documents/memos/{memo['id']}"

        actions = client.get(f"{base}/actions", headers=headers).get_json()
        assert actions == {"status": "pending", "actions": ["send", "cancel"]}

        resp = client.post(f"{base}/status", json={"status": "vendor_received", "reason": "fix"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["document"]["status"] == "vendor_received"

        resp = client.post(f"{base}/status", json={"status": "bogus"}, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "invalid_transition"


class TestLifecycleRoutes:
    def test_memo_to_payment(self, client, db_session, headers, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)
        base = f"/api/lifecycle/memos/{memo['id']}"

        assert client.post(f"{base}/send", headers=headers).status_code == 200
        assert client.post(f"{base}/receive", headers=headers).status_code == 200

        resp = client.post(f"{base}/payment", json={"method": "cash"}, headers=headers)
        body = resp.get_json()

        assert resp.status_code == 200
        assert body["ok"] is True
        assert body["document"]["status"] == "payment_received"
        assert body["invoice"]["total_cents"] == 10800

    def test_illegal_transition(self, client, db_session, headers, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)

        resp = client.post(f"/api/lifecycle/memos/{memo['id']}/payment", json={"method": "cash"}, headers=headers)
        body = resp.get_json()

        assert resp.status_code == 409
        assert body["ok"] is False
        assert body["error"]["current_status"] == "pending"
        assert body["document"]["status"] == "pending"

    def test_unknown_action(self, client, db_session, headers, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)
        resp = client.post(f"/api/lifecycle/memos/{memo['id']}/teleport", headers=headers)
        assert resp.status_code == 404

    def test_missing_prerequisite(self, client, db_session, headers, store_a, customer_a):
        resp = client.post("/api/documents/returns", json={"customer_id": customer_a.id}, headers=headers)
        ret = resp.get_json()["document"]

        resp = client.post(f"/api/lifecycle/returns/{ret['id']}/approve", headers=headers)
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "missing_prerequisite"

    def test_line_routes(self, client, db_session, headers, store_a, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a, quantity=2)
        line_id = memo["lines"][0]["id"]
        base = f"/api/lifecycle/memos/{memo['id']}/lines/{line_id}"

        resp = client.post(f"{base}/return-item", headers=headers)
        assert resp.status_code == 200
        assert inventory_service.get_quantity(store_a.id, unit_a.id) == 10

        resp = client.post(f"{base}/restock-item", headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "already_processed"


class TestHistoryRoutes:
    def test_activity_and_invoices(self, client, db_session, headers, vendor_a, unit_a):
        memo = _create_memo(client, headers, vendor_a, unit_a)
        base = f"/api/lifecycle/memos/{memo['id']}"
        client.post(f"{base}/send", headers=headers)
        client.post(f"{base}/receive", headers=headers)
        client.post(f"{base}/payment", json={"method": "card"}, headers=headers)

        activity = client.get(f"/api/documents/memos/{memo['id']}/activity", headers=headers).get_json()["activity"]
        assert [e["action"] for e in activity] == ["memos.payment", "memos.receive", "memos.send", "memos.created"]
        assert all(e["actor_user_id"] == 42 for e in activity)

        invoices = client.get(f"/api/documents/memos/{memo['id']}/invoices", headers=headers).get_json()["invoices"]
        assert len(invoices) == 1
        assert invoices[0]["status"] == "PAID"
