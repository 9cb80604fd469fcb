# Overview: Applies inbound vendor webhook events to the order they were registered for.

"""
Vendor Webhooks

AUTH: each webhook URL carries the order's opaque token (no session). The
token is compared in constant time; a missing or wrong token is rejected and
the order is left untouched.

EVENTS:
- request_succeeded:  zinc_order_id recorded, zinc_status "placed"
- request_failed:     order -> requires_attention, vendor payload kept
- tracking_obtained / tracking_updated: tracking_data replaced
- status_updated / case_updated: zinc_status refreshed
Every event appends a `webhook` note.
"""

from __future__ import annotations

import hmac

from ..errors import WebhookAuthError, FulfillmentError
from ..extensions import db
from ..models import Order
from . import order_state_service
from .fulfillment_service import WEBHOOK_EVENTS


ZINC_STATUS_BY_EVENT = {
    "request_succeeded": "placed",
    "request_failed": "failed",
    "tracking_obtained": "shipped",
    "tracking_updated": "shipped",
}


class UnknownWebhookEventError(FulfillmentError):
    """Event name is not one the order registered for."""


def verify_token(order: Order, token: str | None) -> None:
    expected = order.webhook_token or ""
    if not expected or not token or not hmac.compare_digest(expected, token):
        raise WebhookAuthError("Invalid webhook token")


def _tracking(payload: dict) -> dict | None:
    tracking = payload.get("tracking")
    if tracking is None:
        tracking = payload.get("data", {}).get("tracking") if isinstance(payload.get("data"), dict) else None
    if isinstance(tracking, list):
        return {"entries": tracking}
    if isinstance(tracking, dict):
        return tracking
    return None


def handle_zinc_webhook(order_id: str, token: str | None, event: str, payload: dict | None) -> Order:
    """
    Apply one vendor webhook call.

    Raises:
        OrderNotFoundError: unknown order
        WebhookAuthError: token mismatch
        UnknownWebhookEventError: unregistered event name
    """
    order = order_state_service.get_order(order_id)
    verify_token(order, token)

    if event not in WEBHOOK_EVENTS:
        raise UnknownWebhookEventError(f"Unknown webhook event: {event}")

    payload = payload or {}

    if event == "request_succeeded":
        vendor_order_id = payload.get("order_id") or payload.get("merchant_order_id")
        if vendor_order_id:
            order.zinc_order_id = str(vendor_order_id)
        order.zinc_status = ZINC_STATUS_BY_EVENT[event]

    elif event == "request_failed":
        order.zinc_status = ZINC_STATUS_BY_EVENT[event]
        message = payload.get("message") or payload.get("code") or "Vendor reported request failure"
        if order.status != order_state_service.STATUS_REQUIRES_ATTENTION:
            order_state_service.mark_requires_attention(
                order,
                f"Vendor reported failure: {message}",
                details={"error_code": "vendor_request_failed"},
                vendor_error=payload,
                note_type="zma_error",
            )

    elif event in ("tracking_obtained", "tracking_updated"):
        tracking = _tracking(payload)
        if tracking is not None:
            order.tracking_data = tracking
        order.zinc_status = ZINC_STATUS_BY_EVENT[event]

    else:
        status = payload.get("status") or payload.get("zinc_status")
        if status:
            order.zinc_status = str(status)

    order_state_service.append_note(order.id, "webhook", f"Vendor webhook received: {event}")
    db.session.commit()
    return order
