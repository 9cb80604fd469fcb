"""
Order processing pipeline tests.

Verifies:
- End-to-end outcomes for clean, invalid, underfunded, resubmitted and
  vendor-rejected orders
- Guards (payment, rate limit, concurrent claim) leave state untouched
- Vendor request body contents
- Wishlist side effect goes through the outbox, not the submission path
"""

import json

import httpx
import pytest

from fulfillment.models import Order, OrderNote, OutboxEvent, WishlistItem, NotificationQueueEntry
from fulfillment.services import notification_service
from fulfillment.services.order_processing_service import process_order, TRIGGER_ADMIN

from conftest import complete_address


def _notes(session, order_id, note_type=None):
    query = session.query(OrderNote).filter_by(order_id=order_id)
    if note_type:
        query = query.filter_by(note_type=note_type)
    return query.order_by(OrderNote.id).all()


# =============================================================================
# END-TO-END OUTCOMES
# =============================================================================


class TestPipelineOutcomes:
    def test_clean_order_is_submitted(self, db_session, vendor, purchaser, make_order):
        order = make_order(line_items=[
            {"product_id": "B0ABCDEFGH", "quantity": 2, "unit_price_cents": 1500},
            {"asin": "B012345678", "price": "20.00"},
        ])

        result = process_order(order.id)

        assert result.http_status == 200
        assert result.success is True
        assert result.body["zincRequestId"] == "req-0001"
        db_session.refresh(order)
        assert order.status == "completed"
        assert order.zinc_request_id == "req-0001"
        assert order.submitted_at is not None
        assert [n.note_type for n in _notes(db_session, order.id)][-1] == "zma_success"

    def test_invalid_identifier_requires_attention(self, db_session, vendor, purchaser, make_order):
        order = make_order(line_items={"items": [
            {"product_id": "B0ABCDEFGH", "quantity": 1},
            {"product_id": "sku-123", "quantity": 1},
        ]})

        result = process_order(order.id)

        assert result.http_status == 200
        assert result.success is False
        assert result.body["errorCode"] == "invalid_product_identifiers"
        db_session.refresh(order)
        assert order.status == "requires_attention"
        assert "sku-123" in order.attention_reason
        assert order.attention_details["invalid_identifiers"] == ["sku-123"]
        assert vendor.orders == []

    def test_malformed_and_invalid_items_share_one_attention_result(self, db_session, vendor, purchaser, make_order):
        order = make_order(line_items=[
            {"product_id": "B0ABCDEFGH", "quantity": -2},
            {"product_id": "sku-123", "quantity": 1},
        ])

        result = process_order(order.id)

        assert result.body["errorCode"] == "malformed_line_item"
        assert result.body["details"]["invalid_identifiers"] == ["sku-123"]
        assert len(result.body["details"]["malformed_items"]) == 1
        db_session.refresh(order)
        assert order.status == "requires_attention"
        assert "sku-123" in order.attention_reason

    def test_underfunded_order_is_deferred(self, db_session, vendor, purchaser, make_order):
        # $350 balance less the $50 margin leaves $300 for a $500 order
        vendor.balance_dollars = 350
        order = make_order(total_amount_cents=50000)

        result = process_order(order.id)

        assert result.http_status == 200
        assert result.body["deferred"] is True
        assert "requires $550.00" in result.body["reason"]
        assert "available $300.00" in result.body["reason"]
        db_session.refresh(order)
        assert order.status == "awaiting_funds"
        assert order.expected_funding_date is not None
        assert order.scheduled_delivery_date > order.expected_funding_date
        assert vendor.orders == []
        assert len(_notes(db_session, order.id, "funding_hold")) == 1

    def test_already_submitted_makes_no_vendor_call(self, db_session, vendor, purchaser, make_order):
        order = make_order(zinc_request_id="req-prior", status="completed")

        result = process_order(order.id)

        assert result.http_status == 200
        assert result.body["alreadySubmitted"] is True
        assert result.body["zincRequestId"] == "req-prior"
        assert vendor.orders == []
        assert vendor.balance_calls == 0

    def test_second_run_after_success_is_a_noop(self, db_session, vendor, purchaser, make_order):
        order = make_order()
        assert process_order(order.id).success

        again = process_order(order.id)

        assert again.body["alreadySubmitted"] is True
        assert len(vendor.orders) == 1

    def test_vendor_rejection_keeps_literal_message(self, db_session, vendor, purchaser, make_order):
        vendor.order_status = 422
        vendor.order_error = {"message": "invalid address"}
        order = make_order()

        result = process_order(order.id)

        assert result.http_status == 200
        assert result.success is False
        assert result.body["vendorError"] == {"message": "invalid address"}
        db_session.refresh(order)
        assert order.status == "requires_attention"
        assert order.error_message == "invalid address"
        assert order.zinc_request_id is None
        assert len(_notes(db_session, order.id, "zma_error")) == 1

    def test_transport_failure_requires_attention(self, db_session, vendor, purchaser, make_order):
        vendor.raise_on_order = httpx.ConnectError("connection refused")
        order = make_order()

        result = process_order(order.id)

        assert result.success is False
        db_session.refresh(order)
        assert order.status == "requires_attention"
        assert order.vendor_error["code"] == "transport_error"

    def test_incomplete_address_requires_attention(self, db_session, vendor, purchaser, make_order):
        order = make_order(shipping_address={"name": "Jamie", "address_line1": "1 Main St"})

        result = process_order(order.id)

        assert result.body["errorCode"] == "incomplete_address"
        assert result.body["details"]["missing_fields"] == ["city", "state", "postal_code"]
        db_session.refresh(order)
        assert order.status == "requires_attention"

    def test_free_text_address_requires_attention(self, db_session, vendor, purchaser, make_order):
        order = make_order(shipping_address="1 Main St, Springfield IL 62701")

        result = process_order(order.id)

        assert result.http_status == 200
        assert result.body["success"] is False
        assert result.body["errorCode"] == "unrecognized_address_shape"
        assert vendor.orders == []
        db_session.refresh(order)
        assert order.status == "requires_attention"
        assert order.attention_details["error_code"] == "unrecognized_address_shape"

    def test_json_string_address_is_submitted(self, db_session, vendor, purchaser, make_order):
        order = make_order(shipping_address=json.dumps(complete_address()))

        result = process_order(order.id)

        assert result.success is True
        assert vendor.orders[0]["shipping_address"]["city"] == complete_address()["city"]

    def test_unexpected_error_marks_failed(self, db_session, vendor, purchaser, make_order):
        vendor.raise_on_order = RuntimeError("boom")
        order = make_order()

        result = process_order(order.id)

        assert result.http_status == 500
        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.status == "failed"
        assert order.error_message == "boom"
        error_notes = _notes(db_session, order.id, "processing_error")
        assert len(error_notes) == 1
        assert "RuntimeError" in error_notes[0].note_content

    def test_requires_attention_order_can_be_reprocessed(self, db_session, vendor, purchaser, make_order):
        vendor.order_status = 422
        order = make_order()
        process_order(order.id)

        vendor.order_status = 200
        result = process_order(order.id, trigger_source=TRIGGER_ADMIN)

        assert result.success is True
        db_session.refresh(order)
        assert order.status == "completed"
        assert order.attention_reason is None
        assert order.vendor_error is None
        assert order.error_message is None

    def test_validation_park_clears_prior_vendor_error(self, db_session, vendor, purchaser, make_order):
        vendor.order_status = 422
        vendor.order_error = {"message": "invalid address"}
        order = make_order()
        process_order(order.id)

        db_session.refresh(order)
        order.shipping_address = {"name": "Jamie"}
        db_session.commit()
        result = process_order(order.id, trigger_source=TRIGGER_ADMIN)

        assert result.body["errorCode"] == "incomplete_address"
        db_session.refresh(order)
        assert order.status == "requires_attention"
        assert order.vendor_error is None
        assert order.error_message is None


# =============================================================================
# GUARDS
# =============================================================================


class TestPipelineGuards:
    def test_missing_order_id(self, db_session):
        assert process_order("").http_status == 400

    def test_unknown_order(self, db_session):
        assert process_order("does-not-exist").http_status == 404

    @pytest.mark.parametrize("payment_status", ["unpaid", "pending", "refunded"])
    def test_unconfirmed_payment_is_rejected(self, db_session, vendor, make_order, payment_status):
        order = make_order(payment_status=payment_status)

        result = process_order(order.id)

        assert result.http_status == 400
        db_session.refresh(order)
        assert order.status == "pending_payment"
        assert _notes(db_session, order.id) == []

    def test_rate_limit_blocks_without_state_change(self, app, db_session, vendor, purchaser, make_order, monkeypatch):
        monkeypatch.setitem(app.config, "SUBMISSION_RATE_LIMIT", 1)
        first = make_order()
        second = make_order()
        assert process_order(first.id).success

        result = process_order(second.id)

        assert result.http_status == 429
        assert result.body["retryAfterSeconds"] >= 0
        db_session.refresh(second)
        assert second.status == "pending_payment"
        assert len(_notes(db_session, second.id, "rate_limit")) == 1

    def test_claim_conflict_returns_409(self, db_session, vendor, purchaser, make_order):
        order = make_order(status="processing")

        result = process_order(order.id)

        assert result.http_status == 409
        assert vendor.orders == []


# =============================================================================
# VENDOR REQUEST
# =============================================================================


class TestVendorRequest:
    def test_request_body(self, db_session, vendor, purchaser, make_order):
        order = make_order(
            line_items=[{"product_id": "B0ABCDEFGH", "quantity": 2, "unit_price_cents": 2500}],
            gift_message="Happy birthday!",
        )

        process_order(order.id)

        body = vendor.orders[0]
        assert body["idempotency_key"] == order.id
        assert body["products"] == [{"product_id": "B0ABCDEFGH", "quantity": 2}]
        # 5000 * 1.10 + 1500 allowance
        assert body["max_price"] == 7000
        assert body["is_gift"] is True
        assert body["gift_message"] == "Happy birthday! - From Alex Buyer"
        assert body["shipping_address"]["first_name"] == "Jamie"
        assert body["shipping_address"]["last_name"] == "Recipient"
        assert body["shipping_address"]["zip_code"] == "62701"
        assert set(body["webhooks"]) == {
            "request_succeeded", "request_failed", "tracking_obtained",
            "tracking_updated", "status_updated", "case_updated",
        }
        db_session.refresh(order)
        assert f"token={order.webhook_token}" in body["webhooks"]["request_succeeded"]
        assert body["webhooks"]["request_succeeded"].startswith("https://hooks.test/api/webhooks/zinc?")

    def test_recipient_assignment_overrides_order_address(self, db_session, vendor, purchaser, make_order):
        recipient = {
            "name": "Riley Friend",
            "shipping_address": {
                "street": "200 Oak Ave",
                "city": "Austin",
                "state": "TX",
                "postal_code": "73301",
            },
        }
        order = make_order(line_items=[
            {"product_id": "B0ABCDEFGH", "unit_price_cents": 1000, "recipient_assignment": recipient},
        ])

        process_order(order.id)

        address = vendor.orders[0]["shipping_address"]
        assert address["first_name"] == "Riley"
        assert address["address_line1"] == "200 Oak Ave"
        assert address["city"] == "Austin"
        # recipient has no phone; order-level phone fills in
        assert address["phone_number"] == "555-0199"

    def test_missing_phone_adds_warning_note(self, db_session, vendor, make_order):
        order = make_order(shipping_address=complete_address(phone=None))

        result = process_order(order.id)

        assert result.success is True
        assert len(_notes(db_session, order.id, "address_warning")) == 1

    def test_funding_bypass_is_reported(self, db_session, vendor, purchaser, make_order):
        vendor.balance_dollars = 0
        order = make_order()

        result = process_order(order.id, trigger_source=TRIGGER_ADMIN, bypass_funding_check=True)

        assert result.success is True
        assert result.body["fundingBypassed"] is True

    def test_balance_outage_fails_open(self, db_session, vendor, purchaser, make_order):
        vendor.balance_status = 502
        order = make_order()

        result = process_order(order.id)

        assert result.success is True
        assert "fundingWarning" in result.body


# =============================================================================
# WISHLIST SIDE EFFECT
# =============================================================================


class TestWishlistOutbox:
    def test_submission_enqueues_and_worker_marks_items(self, db_session, vendor, purchaser, make_order):
        from fulfillment.models import CustomerProfile

        db_session.add(CustomerProfile(user_id="owner-1", display_name="Owner", email="owner@example.com"))
        db_session.add(WishlistItem(owner_user_id="owner-1", product_id="B0TESTASIN", title="Gadget"))
        db_session.add(WishlistItem(owner_user_id="owner-1", product_id="B0TESTASIN", is_public=False))
        db_session.add(WishlistItem(owner_user_id="user-1", product_id="B0TESTASIN"))
        db_session.commit()
        order = make_order()

        assert process_order(order.id).success
        events = db_session.query(OutboxEvent).all()
        assert len(events) == 1
        assert events[0].payload["product_ids"] == ["B0TESTASIN"]
        # nothing touched until the worker runs
        assert db_session.query(WishlistItem).filter(WishlistItem.purchased_at.isnot(None)).count() == 0

        summary = notification_service.process_outbox_events()

        assert summary == {"processed": 1, "failed": 0, "retrying": 0}
        purchased = db_session.query(WishlistItem).filter(WishlistItem.purchased_at.isnot(None)).all()
        assert [(w.owner_user_id, w.is_public) for w in purchased] == [("owner-1", True)]
        emails = db_session.query(NotificationQueueEntry).all()
        assert [(e.recipient, e.event_type) for e in emails] == [("owner@example.com", "wishlist_item_purchased")]

    def test_unknown_event_type_retries_then_fails(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "OUTBOX_MAX_ATTEMPTS", 2)
        notification_service.enqueue_outbox_event("mystery", {})

        assert notification_service.process_outbox_events()["retrying"] == 1
        assert notification_service.process_outbox_events()["failed"] == 1

        event = db_session.query(OutboxEvent).one()
        assert event.status == "FAILED"
        assert event.attempts == 2
        assert "mystery" in event.last_error
