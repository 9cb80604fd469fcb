# Overview: Builds the vendor order request and interprets the vendor response.

"""
Fulfillment Submitter

REQUEST:
- idempotency_key = order.id (the vendor de-duplicates retries on it)
- max_price = subtotal * ZINC_MAX_PRICE_BUFFER + ZINC_MAX_PRICE_ALLOWANCE_CENTS
  (the vendor charges shipping/tax on top of item prices)
- shipping_address: the normalized address in the vendor's shape
- gift flag/message from any item flag or any gift-message text, message
  suffixed with " - From <purchaser display name>"
- webhooks for every vendor event, each URL carrying a per-order token

RESPONSE:
- request_id present -> order completed with that id
- anything else -> requires_attention with the vendor payload verbatim
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

from flask import current_app

from ..extensions import db
from ..models import Order, CustomerProfile
from . import order_state_service
from .line_item_service import LineItem, subtotal_cents
from .zinc_client import ZincClient, ZincApiError


WEBHOOK_EVENTS = (
    "request_succeeded",
    "request_failed",
    "tracking_obtained",
    "tracking_updated",
    "status_updated",
    "case_updated",
)

GIFT_MESSAGE_MAX_LENGTH = 240


@dataclass
class SubmissionOutcome:
    success: bool
    request_id: str | None = None
    vendor_error: dict | None = None
    error_message: str | None = None
    already_submitted: bool = False


def generate_webhook_token() -> str:
    return secrets.token_urlsafe(32)


def webhook_urls(order_id: str, token: str) -> dict:
    """Callback URL per vendor event; the token authenticates the inbound call."""
    base = current_app.config.get("WEBHOOK_BASE_URL", "").rstrip("/")
    urls = {}
    for event in WEBHOOK_EVENTS:
        query = urlencode({"orderId": order_id, "token": token, "event": event})
        urls[event] = f"{base}/api/webhooks/zinc?{query}"
    return urls


def max_price_cents(items: list[LineItem]) -> int:
    cfg = current_app.config
    buffer = float(cfg.get("ZINC_MAX_PRICE_BUFFER", 1.10))
    allowance = int(cfg.get("ZINC_MAX_PRICE_ALLOWANCE_CENTS", 1500))
    return int(round(subtotal_cents(items) * buffer)) + allowance


def purchaser_display_name(user_id: str) -> str:
    profile = db.session.get(CustomerProfile, user_id)
    if profile and profile.display_name:
        return profile.display_name.strip()
    return "a friend"


def purchaser_phone(user_id: str) -> str | None:
    profile = db.session.get(CustomerProfile, user_id)
    return profile.phone if profile else None


def _split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return " ".join(parts[:-1]), parts[-1]


def to_vendor_address(address: dict) -> dict:
    """Canonical address -> vendor shipping_address shape."""
    first_name, last_name = _split_name(address["name"])
    return {
        "first_name": first_name,
        "last_name": last_name,
        "address_line1": address["address_line1"],
        "address_line2": address.get("address_line2") or "",
        "zip_code": address["postal_code"],
        "city": address["city"],
        "state": address["state"],
        "country": address.get("country") or "US",
        "phone_number": address.get("phone") or "",
    }


def gift_options(order: Order, items: list[LineItem], purchaser_name: str) -> tuple[bool, str | None]:
    """
    Derive (is_gift, gift_message).

    A message on the order wins over per-item messages.
    """
    message = (order.gift_message or "").strip()
    if not message:
        message = next((item.gift_message.strip() for item in items if item.gift_message), "")

    is_gift = bool(order.is_gift) or any(item.is_gift for item in items) or bool(message)
    if not is_gift:
        return False, None
    if not message:
        return True, None

    signed = f"{message} - From {purchaser_name}"
    return True, signed[:GIFT_MESSAGE_MAX_LENGTH]


def build_zinc_request(
    order: Order,
    items: list[LineItem],
    address: dict,
    *,
    purchaser_name: str,
    webhook_token: str,
) -> dict:
    is_gift, gift_message = gift_options(order, items, purchaser_name)
    body = {
        "idempotency_key": order.id,
        "retailer": current_app.config.get("ZINC_RETAILER", "amazon"),
        "products": [{"product_id": item.product_id, "quantity": item.quantity} for item in items],
        "max_price": max_price_cents(items),
        "shipping_address": to_vendor_address(address),
        "shipping_method": "cheapest",
        "is_gift": is_gift,
        "webhooks": webhook_urls(order.id, webhook_token),
        "client_notes": {"order_id": order.id, "order_number": order.order_number},
    }
    if gift_message:
        body["gift_message"] = gift_message
    return body


def submit(
    order: Order,
    items: list[LineItem],
    address: dict,
    *,
    client: ZincClient | None = None,
) -> SubmissionOutcome:
    """
    Submit an order the funding gate approved and record the outcome.

    Vendor rejections move the order to requires_attention; they are not
    raised. Unexpected exceptions propagate to the caller.
    """
    client = client or ZincClient.from_app()
    purchaser_name = purchaser_display_name(order.user_id)

    token = order.webhook_token or generate_webhook_token()
    if order.webhook_token != token:
        order_state_service.assign_webhook_token(order, token)

    body = build_zinc_request(order, items, address, purchaser_name=purchaser_name, webhook_token=token)

    try:
        submission = client.submit_order(body)
    except ZincApiError as exc:
        vendor_error = exc.payload or {"message": str(exc)}
        current_app.logger.warning("Vendor rejected order %s: %s", order.id, exc)
        order_state_service.mark_requires_attention(
            order,
            f"Vendor API error: {vendor_error.get('message') or exc}",
            details={"error_code": "vendor_api_error", "status_code": exc.status_code},
            vendor_error=vendor_error,
            note_type="zma_error",
        )
        return SubmissionOutcome(
            success=False,
            vendor_error=vendor_error,
            error_message=order.error_message,
        )

    if not order_state_service.record_submission(order, submission.request_id):
        db.session.refresh(order)
        return SubmissionOutcome(success=True, request_id=order.zinc_request_id, already_submitted=True)

    db.session.refresh(order)
    current_app.logger.info("Order %s submitted to vendor: %s", order.id, submission.request_id)
    return SubmissionOutcome(success=True, request_id=submission.request_id)
