# Overview: Orchestrates one pipeline run for an order from trigger to recorded outcome.

"""
Order Processing Pipeline

================================================================================
FLOW (one short-lived run per trigger)
================================================================================

    trigger (payment webhook | scheduled re-drive | admin force-process)
      1. load order                         -> 404 if unknown
      2. idempotency guard                  -> 200 with existing vendor id
      3. payment guard                      -> 400, no state change
      4. rate limit                         -> 429, rate_limit note, no state change
      5. atomic claim into processing       -> 409 if a concurrent run owns it
      6. line items + address               -> requires_attention (200, success false)
      7. funding gate                       -> awaiting_funds | scheduled (200, deferred)
      8. vendor submission                  -> completed | requires_attention
      9. wishlist check enqueued            (outbox, never affects the result)

Unexpected exceptions after the claim mark the order failed (500) with the
message and stack in an internal note.

RESPONSE BODIES: always JSON with `success`; routes and the CLI render them
unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import OrderNotFoundError, PaymentNotConfirmedError
from ..extensions import db
from ..time_utils import to_utc_z
from . import order_state_service, rate_limit_service
from .address_service import (
    AddressValidationError,
    normalize_shipping_address,
    find_recipient_override,
)
from .line_item_service import LineItemExtractionError, extract_line_items
from .funding_service import apply_funding_gate
from .fulfillment_service import submit, purchaser_phone
from .notification_service import enqueue_outbox_event, EVENT_WISHLIST_PURCHASE_CHECK
from .zinc_client import ZincClient


TRIGGER_PAYMENT = "payment_webhook"
TRIGGER_REDRIVE = "scheduled_redrive"
TRIGGER_ADMIN = "admin_force_process"


@dataclass
class ProcessingResult:
    http_status: int
    body: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.body.get("success"))


def _attention_result(order, error_code: str, message: str, extra: dict) -> ProcessingResult:
    details = {"error_code": error_code, **extra}
    order_state_service.mark_requires_attention(order, message, details=details)
    return ProcessingResult(200, {
        "success": False,
        "orderId": order.id,
        "status": order.status,
        "error": message,
        "errorCode": error_code,
        "details": details,
    })


def process_order(
    order_id: str,
    *,
    trigger_source: str = TRIGGER_PAYMENT,
    bypass_funding_check: bool = False,
    client: ZincClient | None = None,
) -> ProcessingResult:
    """
    Run the fulfillment pipeline for one order.

    Args:
        order_id: Order to process
        trigger_source: Recorded in the processing_start note
        bypass_funding_check: Skip the funding gate (trusted callers only)
        client: Vendor client (defaults to one built from app config)

    Returns:
        ProcessingResult with the HTTP status and JSON body for the caller
    """
    if not order_id:
        return ProcessingResult(400, {"success": False, "error": "orderId is required"})

    try:
        order = order_state_service.get_order(order_id)
    except OrderNotFoundError as exc:
        return ProcessingResult(404, {"success": False, "error": str(exc)})

    # Idempotency guard: a recorded vendor id means the order was already submitted
    if order.zinc_request_id:
        return ProcessingResult(200, {
            "success": True,
            "orderId": order.id,
            "status": order.status,
            "zincRequestId": order.zinc_request_id,
            "alreadySubmitted": True,
        })

    try:
        order_state_service.ensure_payment_confirmed(order)
    except PaymentNotConfirmedError as exc:
        return ProcessingResult(400, {"success": False, "orderId": order.id, "error": str(exc)})

    limit = rate_limit_service.check_and_increment(order.user_id)
    if not limit.allowed:
        order_state_service.append_note(
            order.id,
            "rate_limit",
            f"Submission blocked by rate limit ({limit.count}/{limit.limit}); "
            f"retry in {limit.retry_after_seconds}s",
        )
        db.session.commit()
        return ProcessingResult(429, {
            "success": False,
            "orderId": order.id,
            "error": "Rate limit exceeded",
            "retryAfterSeconds": limit.retry_after_seconds,
        })

    if not order_state_service.claim_for_processing(order, trigger_source=trigger_source):
        return ProcessingResult(409, {
            "success": False,
            "orderId": order.id,
            "error": "Order is already being processed",
        })

    try:
        return _run_claimed(order, bypass_funding_check=bypass_funding_check, client=client)
    except Exception as exc:
        current_app.logger.exception("Unexpected failure processing order %s", order_id)
        order_state_service.mark_failed(order_id, exc)
        return ProcessingResult(500, {
            "success": False,
            "orderId": order_id,
            "error": "Order processing failed",
            "message": str(exc),
        })


def _run_claimed(order, *, bypass_funding_check: bool, client: ZincClient | None) -> ProcessingResult:
    try:
        items = extract_line_items(order.line_items)
    except LineItemExtractionError as exc:
        return _attention_result(order, exc.error_code, str(exc), {
            "invalid_identifiers": exc.invalid_identifiers,
            "malformed_items": exc.malformed_items,
        })

    try:
        normalized = normalize_shipping_address(
            order.shipping_address,
            recipient_override=find_recipient_override(items),
            profile_phone=purchaser_phone(order.user_id),
        )
    except AddressValidationError as exc:
        return _attention_result(order, exc.error_code, str(exc), {"missing_fields": exc.missing_fields})

    for warning in normalized.warnings:
        order_state_service.append_note(order.id, "address_warning", warning)
    db.session.commit()

    client = client or ZincClient.from_app()

    decision = apply_funding_gate(order, bypass=bypass_funding_check, client=client)
    if not decision.proceed:
        return ProcessingResult(200, {
            "success": False,
            "deferred": True,
            "orderId": order.id,
            "status": order.status,
            "reason": order.funding_hold_reason,
            "expectedFundingDate": to_utc_z(decision.expected_funding_date),
            "scheduledDeliveryDate": to_utc_z(decision.scheduled_delivery_date),
        })

    outcome = submit(order, items, normalized.address, client=client)
    if not outcome.success:
        return ProcessingResult(200, {
            "success": False,
            "orderId": order.id,
            "status": order.status,
            "error": outcome.error_message,
            "vendorError": outcome.vendor_error,
        })

    if not outcome.already_submitted:
        enqueue_outbox_event(EVENT_WISHLIST_PURCHASE_CHECK, {
            "order_id": order.id,
            "purchaser_user_id": order.user_id,
            "product_ids": [item.product_id for item in items],
        })

    body = {
        "success": True,
        "orderId": order.id,
        "status": order.status,
        "zincRequestId": outcome.request_id,
    }
    if decision.warning:
        body["fundingWarning"] = decision.warning
    if decision.bypassed:
        body["fundingBypassed"] = True
    return ProcessingResult(200, body)
