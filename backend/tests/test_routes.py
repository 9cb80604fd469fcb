"""
HTTP route and CLI tests.

Verifies:
- Admin token enforcement (401 missing, 403 wrong)
- Process / force-process / attention / order detail endpoints
- Funding summary and scheduled re-drive
- Auto-gift endpoints
- Health endpoint and CLI command groups
"""

from datetime import timedelta

from fulfillment.models import Order
from fulfillment.time_utils import utcnow

from conftest import ADMIN_TOKEN


def _reload(db_session, order_id):
    db_session.expire_all()
    return db_session.get(Order, order_id)


# =============================================================================
# ADMIN AUTH
# =============================================================================


class TestAdminAuth:
    def test_missing_token_is_401(self, client, db_session):
        assert client.get("/api/funding/summary").status_code == 401

    def test_wrong_token_is_403(self, client, db_session):
        response = client.get("/api/funding/summary", headers={"X-Admin-Token": "wrong"})
        assert response.status_code == 403

    def test_bearer_token_accepted(self, client, db_session, vendor):
        response = client.get("/api/funding/summary", headers={"Authorization": f"Bearer {ADMIN_TOKEN}"})
        assert response.status_code == 200

    def test_unset_admin_token_rejects_everyone(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ADMIN_API_TOKEN", "")
        response = client.get("/api/funding/summary", headers={"X-Admin-Token": "anything"})
        assert response.status_code == 403

    def test_process_route_needs_no_admin_token(self, client, db_session, vendor, purchaser, make_order):
        order = make_order()
        response = client.post("/api/orders/process", json={"orderId": order.id})
        assert response.status_code == 200


# =============================================================================
# ORDERS
# =============================================================================


class TestOrderRoutes:
    def test_process_success(self, client, db_session, vendor, purchaser, make_order):
        order = make_order()

        response = client.post("/api/orders/process", json={"orderId": order.id})

        data = response.get_json()
        assert data["success"] is True
        assert data["zincRequestId"] == "req-0001"
        assert _reload(db_session, order.id).status == "completed"

    def test_process_missing_order_id(self, client, db_session):
        response = client.post("/api/orders/process", json={})
        assert response.status_code == 400

    def test_process_unknown_order(self, client, db_session):
        response = client.post("/api/orders/process", json={"order_id": "nope"})
        assert response.status_code == 404

    def test_force_process_bypasses_funding(self, client, db_session, vendor, purchaser, make_order, admin_headers):
        vendor.balance_dollars = 0
        order = make_order()

        deferred = client.post("/api/orders/process", json={"orderId": order.id}).get_json()
        assert deferred["deferred"] is True

        response = client.post(
            f"/api/orders/{order.id}/force-process",
            json={"bypassFundingCheck": True},
            headers=admin_headers,
        )

        data = response.get_json()
        assert response.status_code == 200
        assert data["fundingBypassed"] is True
        assert _reload(db_session, order.id).status == "completed"

    def test_attention_list(self, client, db_session, vendor, purchaser, make_order, admin_headers):
        order = make_order(shipping_address={"name": "Jamie"})
        client.post("/api/orders/process", json={"orderId": order.id})

        response = client.get("/api/orders/attention", headers=admin_headers)

        data = response.get_json()
        assert data["count"] == 1
        assert data["orders"][0]["id"] == order.id
        assert "city" in data["orders"][0]["attention_details"]["missing_fields"]

    def test_order_detail_includes_notes(self, client, db_session, vendor, purchaser, make_order, admin_headers):
        order = make_order()
        client.post("/api/orders/process", json={"orderId": order.id})

        response = client.get(f"/api/orders/{order.id}", headers=admin_headers)

        data = response.get_json()
        assert data["order"]["status"] == "completed"
        note_types = [n["note_type"] for n in data["notes"]]
        assert note_types[0] == "processing_start"
        assert "zma_success" in note_types


# =============================================================================
# FUNDING
# =============================================================================


class TestFundingRoutes:
    def test_summary(self, client, db_session, vendor, admin_headers):
        vendor.balance_dollars = 250

        data = client.get("/api/funding/summary", headers=admin_headers).get_json()

        assert data["current_balance_cents"] == 25000
        assert data["balance_is_live"] is True
        assert data["orders_waiting"] == 0

    def test_redrive_submits_due_orders(self, client, db_session, vendor, purchaser, make_order, admin_headers):
        vendor.balance_dollars = 0
        due = make_order()
        later = make_order()
        client.post("/api/orders/process", json={"orderId": due.id})
        client.post("/api/orders/process", json={"orderId": later.id})

        due = _reload(db_session, due.id)
        due.expected_funding_date = utcnow() - timedelta(hours=1)
        db_session.commit()
        vendor.balance_dollars = 1000

        data = client.post("/api/funding/redrive", json={}, headers=admin_headers).get_json()

        assert data["count"] == 1
        assert data["results"][0]["orderId"] == due.id
        assert data["results"][0]["httpStatus"] == 200
        assert _reload(db_session, due.id).status == "completed"
        assert _reload(db_session, later.id).status == "awaiting_funds"


# =============================================================================
# AUTO-GIFTS
# =============================================================================


class TestAutoGiftRoutes:
    PAYLOAD = {
        "rule": {"id": "rule-1", "budget_limit_cents": 5000, "relationship_type": "friend"},
        "event": {"id": "event-1", "date_type": "birthday"},
        "candidates": [
            {"product_id": "B0BOOK0001", "name": "Mystery novel", "price_cents": 2500, "category": "Books & Reading"},
        ],
        "settings": {"auto_approve_gifts": True},
    }

    def test_recommend_then_approve(self, client, db_session, admin_headers):
        recommendation = client.post(
            "/api/auto-gifts/recommendations", json=self.PAYLOAD, headers=admin_headers
        ).get_json()["recommendation"]
        assert recommendation["needsApproval"] is False

        response = client.post(
            "/api/auto-gifts/approve",
            json={
                "userId": "user-1",
                "approved": True,
                "recommendation": recommendation,
                "shippingAddress": {"name": "Riley", "address_line1": "1 Elm", "city": "X", "state": "CA", "zip": "90001"},
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        order_id = response.get_json()["orderId"]
        assert _reload(db_session, order_id).status == "pending_payment"

    def test_approve_rejects_malformed_deadline(self, client, db_session, admin_headers):
        recommendation = client.post(
            "/api/auto-gifts/recommendations", json=self.PAYLOAD, headers=admin_headers
        ).get_json()["recommendation"]
        recommendation["approvalDeadline"] = "not-a-date"

        response = client.post(
            "/api/auto-gifts/approve",
            json={
                "userId": "user-1",
                "approved": True,
                "recommendation": recommendation,
                "shippingAddress": {"name": "Riley", "address_line1": "1 Elm", "city": "X", "state": "CA", "zip": "90001"},
            },
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["success"] is False
        assert "approvalDeadline" in response.get_json()["error"]
        assert db_session.query(Order).count() == 0

    def test_declined_creates_nothing(self, client, db_session, admin_headers):
        response = client.post(
            "/api/auto-gifts/approve",
            json={"userId": "user-1", "approved": False, "recommendation": {}},
            headers=admin_headers,
        )

        assert response.get_json()["approved"] is False
        assert db_session.query(Order).count() == 0

    def test_recommendations_require_fields(self, client, db_session, admin_headers):
        response = client.post("/api/auto-gifts/recommendations", json={"rule": {}}, headers=admin_headers)
        assert response.status_code == 400


# =============================================================================
# SYSTEM + CLI
# =============================================================================


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get("/health")
        data = response.get_json()
        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"

    def test_health_degraded_without_vendor_key(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ZINC_API_KEY", "")
        data = client.get("/health").get_json()
        assert data["status"] == "degraded"


class TestCli:
    def test_orders_process_and_show(self, app, db_session, vendor, purchaser, make_order):
        order = make_order()
        runner = app.test_cli_runner()

        result = runner.invoke(args=["orders", "process", order.id])
        assert result.exit_code == 0
        assert "PASS HTTP 200" in result.output

        result = runner.invoke(args=["orders", "show", order.id])
        assert "zma_success" in result.output

    def test_show_unknown_order(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["orders", "show", "nope"])
        assert result.exit_code != 0

    def test_funding_set_balance_and_summary(self, app, db_session, vendor):
        runner = app.test_cli_runner()
        vendor.balance_status = 500

        assert runner.invoke(args=["funding", "set-balance", "1250.50"]).exit_code == 0
        result = runner.invoke(args=["funding", "summary"])

        assert "Balance (stored):" in result.output
        assert "$1,250.50" in result.output

    def test_outbox_process(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["outbox", "process"])
        assert "DONE processed=0" in result.output
