"""
Vendor webhook tests.

Verifies:
- Token authentication (missing, wrong, correct)
- Event handling updates vendor status, tracking and attention state
- Every accepted event leaves a webhook note
"""

import pytest

from fulfillment.models import Order, OrderNote
from fulfillment.services.order_processing_service import process_order


@pytest.fixture
def submitted_order(db_session, vendor, purchaser, make_order):
    order = make_order()
    assert process_order(order.id).success
    db_session.refresh(order)
    return order


def _post(client, order, event, payload=None, token=None):
    params = {"orderId": order.id, "event": event, "token": token if token is not None else order.webhook_token}
    return client.post("/api/webhooks/zinc", query_string=params, json=payload or {})


def _reload(db_session, order_id):
    db_session.expire_all()
    return db_session.get(Order, order_id)


# =============================================================================
# AUTHENTICATION
# =============================================================================


class TestWebhookAuth:
    def test_wrong_token_is_rejected(self, client, db_session, submitted_order):
        response = _post(client, submitted_order, "request_succeeded", {"order_id": "112-1"}, token="nope")

        assert response.status_code == 403
        order = _reload(db_session, submitted_order.id)
        assert order.zinc_order_id is None

    def test_missing_token_is_rejected(self, client, db_session, submitted_order):
        response = _post(client, submitted_order, "request_succeeded", token="")
        assert response.status_code == 403

    def test_missing_params(self, client, db_session):
        response = client.post("/api/webhooks/zinc", json={})
        assert response.status_code == 400

    def test_unknown_order(self, client, db_session):
        response = client.post(
            "/api/webhooks/zinc",
            query_string={"orderId": "missing", "event": "request_succeeded", "token": "x"},
        )
        assert response.status_code == 404

    def test_unknown_event(self, client, db_session, submitted_order):
        response = _post(client, submitted_order, "order_exploded")
        assert response.status_code == 400


# =============================================================================
# EVENTS
# =============================================================================


class TestWebhookEvents:
    def test_request_succeeded_records_vendor_order(self, client, db_session, submitted_order):
        response = _post(client, submitted_order, "request_succeeded", {"order_id": "112-7654321"})

        assert response.status_code == 200
        order = _reload(db_session, submitted_order.id)
        assert order.zinc_order_id == "112-7654321"
        assert order.zinc_status == "placed"
        assert order.status == "completed"

    def test_tracking_replaces_tracking_data(self, client, db_session, submitted_order):
        _post(client, submitted_order, "tracking_obtained", {"tracking": [{"carrier": "UPS", "number": "1Z1"}]})
        _post(client, submitted_order, "tracking_updated", {"tracking": {"carrier": "UPS", "number": "1Z2"}})

        order = _reload(db_session, submitted_order.id)
        assert order.tracking_data == {"carrier": "UPS", "number": "1Z2"}
        assert order.zinc_status == "shipped"

    def test_request_failed_moves_to_attention(self, client, db_session, submitted_order):
        payload = {"_type": "error", "code": "max_price_exceeded", "message": "Max price exceeded"}

        response = _post(client, submitted_order, "request_failed", payload)

        assert response.status_code == 200
        order = _reload(db_session, submitted_order.id)
        assert order.status == "requires_attention"
        assert order.vendor_error == payload
        assert order.error_message == "Max price exceeded"
        assert order.zinc_request_id is not None

    def test_status_updated_refreshes_vendor_status(self, client, db_session, submitted_order):
        _post(client, submitted_order, "status_updated", {"status": "in_transit"})

        order = _reload(db_session, submitted_order.id)
        assert order.zinc_status == "in_transit"

    def test_every_event_is_noted(self, client, db_session, submitted_order):
        for event in ("request_succeeded", "status_updated", "case_updated"):
            assert _post(client, submitted_order, event).status_code == 200

        db_session.expire_all()
        notes = db_session.query(OrderNote).filter_by(order_id=submitted_order.id, note_type="webhook").all()
        assert len(notes) == 3
