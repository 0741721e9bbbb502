"""
Refund API tests.

Walks a refund through the HTTP surface: cashier requests, manager
approves, processes and completes; plus policy and query endpoints.
"""

import pytest


@pytest.fixture
def sale(client, cashier_headers, products, customer):
    formal, casual = products
    resp = client.post(
        "/api/sales",
        json={
            "items": [{"product_id": formal.id, "quantity": 1}, {"product_id": casual.id, "quantity": 1}],
            "payment_method": "cash",
            "customer_id": customer.id,
        },
        headers=cashier_headers,
    )
    assert resp.status_code == 201, resp.json
    return resp.json["sale"]


def _create(client, headers, sale, lines, **extra):
    body = {
        "sale_id": sale["id"],
        "items": lines,
        "refund_method": "cash",
        "refund_reason": "defective",
    }
    body.update(extra)
    return client.post("/api/refunds", json=body, headers=headers)


def _lines(sale, *names):
    return [
        {"sale_item_id": item["id"], "quantity": item["quantity"]}
        for item in sale["items"]
        if not names or item["product_name"] in names
    ]


class TestRefundLifecycle:

    def test_full_flow(self, client, sale, cashier_headers, manager_headers, branch, products):
        formal, _ = products

        created = _create(client, cashier_headers, sale, _lines(sale))
        assert created.status_code == 201
        assert created.json["refund_number"] == "REF-0001"
        assert created.json["approval_status"] == "pending_approval"
        refund_id = created.json["refund_id"]

        pending = client.get("/api/refunds/pending", headers=manager_headers)
        assert [r["id"] for r in pending.json["refunds"]] == [refund_id]

        approved = client.post(f"/api/refunds/{refund_id}/approve", json={"notes": "ok"}, headers=manager_headers)
        assert approved.status_code == 200
        assert approved.json["refund"]["approval_status"] == "approved"

        processed = client.post(
            f"/api/refunds/{refund_id}/process",
            json={"refund_details": {"reference": "DRAWER-2"}},
            headers=cashier_headers,
        )
        assert processed.status_code == 200
        assert processed.json["refund"]["status"] == "processed"

        completed = client.post(
            f"/api/refunds/{refund_id}/complete",
            json={"return_condition": "good", "inspection_notes": "Tags attached"},
            headers=manager_headers,
        )
        assert completed.status_code == 200
        assert completed.json["sale_status"] == "cancelled"
        assert completed.json["items_restocked"] == 2
        assert completed.json["points_reversed"] == 37
        assert completed.json["refund"]["status"] == "completed"

        sale_after = client.get(f"/api/sales/{sale['id']}", headers=cashier_headers)
        assert sale_after.json["sale"]["status"] == "cancelled"

        product = client.get(f"/api/products/{formal.id}", headers=cashier_headers)
        assert product.json["product"]["current_stock"] == 10

        audit = client.get(f"/api/refunds/{refund_id}/audit", headers=cashier_headers)
        actions = [entry["action_type"] for entry in audit.json["audit_trail"]]
        assert actions == ["completed", "processed", "approved", "created"]

    def test_reject(self, client, sale, cashier_headers, manager_headers):
        refund_id = _create(client, cashier_headers, sale, _lines(sale)).json["refund_id"]

        missing = client.post(f"/api/refunds/{refund_id}/reject", json={}, headers=manager_headers)
        assert missing.status_code == 400

        rejected = client.post(f"/api/refunds/{refund_id}/reject", json={"reason": "Worn"}, headers=manager_headers)
        assert rejected.status_code == 200
        assert rejected.json["refund"]["status"] == "rejected"

        again = client.post(f"/api/refunds/{refund_id}/approve", headers=manager_headers)
        assert again.status_code == 400
        assert again.json["error"] == "Cannot approve refund with status: rejected"

    def test_process_unapproved(self, client, sale, cashier_headers):
        refund_id = _create(client, cashier_headers, sale, _lines(sale)).json["refund_id"]

        resp = client.post(f"/api/refunds/{refund_id}/process", headers=cashier_headers)

        assert resp.status_code == 400
        assert resp.json["error"] == "Cannot process unapproved refund"

    def test_unknown_refund(self, client, manager_headers):
        assert client.post("/api/refunds/99999/approve", headers=manager_headers).status_code == 404
        assert client.get("/api/refunds/99999", headers=manager_headers).status_code == 404
        assert client.get("/api/refunds/99999/audit", headers=manager_headers).status_code == 404

    def test_unknown_sale(self, client, cashier_headers):
        resp = client.post(
            "/api/refunds",
            json={"sale_id": 99999, "items": [{"product_id": 1, "quantity": 1}],
                  "refund_method": "cash", "refund_reason": "defective"},
            headers=cashier_headers,
        )
        assert resp.status_code == 404

    def test_invalid_amount_type(self, client, sale, cashier_headers):
        resp = _create(client, cashier_headers, sale, _lines(sale), refund_amount_cents=12.5)
        assert resp.status_code == 400

    def test_over_quantity(self, client, sale, cashier_headers):
        lines = _lines(sale, "Nida Formal Abaya")
        lines[0]["quantity"] = 2

        resp = _create(client, cashier_headers, sale, lines)

        assert resp.status_code == 400
        assert "only 1 refundable" in resp.json["error"]


class TestRefundQueries:

    def test_by_sale_and_customer(self, client, sale, cashier_headers, customer):
        _create(client, cashier_headers, sale, _lines(sale, "Nida Formal Abaya"))

        by_sale = client.get(f"/api/refunds/by-sale/{sale['id']}", headers=cashier_headers)
        by_customer = client.get(f"/api/refunds/by-customer/{customer.id}", headers=cashier_headers)

        assert len(by_sale.json["refunds"]) == 1
        assert by_customer.json["refunds"][0]["customer_phone"] == "01711000000"

    def test_list_filters(self, client, sale, cashier_headers):
        _create(client, cashier_headers, sale, _lines(sale, "Nida Formal Abaya"))

        assert len(client.get("/api/refunds?status=pending", headers=cashier_headers).json["refunds"]) == 1
        assert client.get("/api/refunds?status=lost", headers=cashier_headers).status_code == 400

    def test_statistics(self, client, sale, cashier_headers, manager_headers):
        _create(client, cashier_headers, sale, _lines(sale, "Cotton Everyday Abaya"), refund_method="card")

        stats = client.get("/api/refunds/statistics", headers=manager_headers)
        report = client.get("/api/reports/refunds", headers=manager_headers)

        assert stats.status_code == 200
        assert stats.json["total_refunds"] == 1
        assert stats.json["by_method"] == {"card": 1}
        assert report.json == stats.json

    def test_statistics_bad_date(self, client, manager_headers):
        resp = client.get("/api/refunds/statistics?start=soon", headers=manager_headers)
        assert resp.status_code == 400


class TestRefundPolicyRoutes:

    def test_get_without_policy(self, client, branch, cashier_headers):
        resp = client.get(f"/api/refunds/policy/{branch.id}", headers=cashier_headers)

        assert resp.status_code == 200
        assert resp.json["policy"] is None
        assert resp.json["defaults"]["refund_window_days"] == 30

    def test_update(self, client, branch, manager_headers):
        resp = client.put(
            f"/api/refunds/policy/{branch.id}",
            json={"refund_window_days": 14, "allowed_reasons": ["defective"], "branch_id": 999},
            headers=manager_headers,
        )

        assert resp.status_code == 200
        assert resp.json["policy"]["refund_window_days"] == 14
        assert resp.json["policy"]["allowed_reasons"] == ["defective"]
        assert resp.json["policy"]["branch_id"] == branch.id
        assert resp.json["policy"]["updated_by_name"] == "Manager"

    def test_update_rejects_bad_values(self, client, branch, manager_headers):
        resp = client.put(f"/api/refunds/policy/{branch.id}", json={"max_refund_percentage": 101}, headers=manager_headers)
        assert resp.status_code == 400

    def test_update_unknown_branch(self, client, manager_headers):
        resp = client.put("/api/refunds/policy/99999", json={}, headers=manager_headers)
        assert resp.status_code == 404

    def test_auto_approved_request(self, client, branch, sale, cashier_headers, manager_headers):
        client.put(f"/api/refunds/policy/{branch.id}", json={"auto_approve_below_cents": 150000}, headers=manager_headers)

        resp = _create(client, cashier_headers, sale, _lines(sale, "Cotton Everyday Abaya"))

        assert resp.status_code == 201
        assert resp.json["approval_status"] == "approved"
        assert resp.json["refund"]["approved_by_name"] == "Refund policy"
