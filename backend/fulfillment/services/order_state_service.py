# Overview: Order lifecycle state machine; single writer of status and funding fields.

"""
Order State Manager

================================================================================
PURPOSE: Own the order's lifecycle and funding-status fields
================================================================================

STATE MACHINE:
    pending_payment -> processing -> completed
                                  -> awaiting_funds | scheduled
                                  -> requires_attention
                                  -> failed

    awaiting_funds / scheduled / requires_attention are RECOVERABLE: a later
    funding event, scheduled re-drive, or admin action may claim the order
    back into processing.

RULES:
1. Only confirmed payments (paid, succeeded, authorized) may enter processing.
2. The claim into processing is one conditional UPDATE; a concurrent run that
   loses the claim does nothing.
3. The vendor id is written with UPDATE ... WHERE zinc_request_id IS NULL;
   an order that already has one is never resubmitted.
4. Every transition appends an OrderNote carrying its reason.

================================================================================
"""

from __future__ import annotations

import traceback

from ..extensions import db
from ..errors import OrderNotFoundError, PaymentNotConfirmedError, FulfillmentError
from ..models import Order, OrderNote
from ..time_utils import utcnow
from .concurrency import guarded_update


STATUS_PENDING_PAYMENT = "pending_payment"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_SCHEDULED = "scheduled"
STATUS_AWAITING_FUNDS = "awaiting_funds"
STATUS_REQUIRES_ATTENTION = "requires_attention"
STATUS_FAILED = "failed"

VALID_STATUSES = {
    STATUS_PENDING_PAYMENT,
    STATUS_PROCESSING,
    STATUS_COMPLETED,
    STATUS_SCHEDULED,
    STATUS_AWAITING_FUNDS,
    STATUS_REQUIRES_ATTENTION,
    STATUS_FAILED,
}

RECOVERABLE_STATUSES = {STATUS_AWAITING_FUNDS, STATUS_SCHEDULED, STATUS_REQUIRES_ATTENTION}
CLAIMABLE_STATUSES = {STATUS_PENDING_PAYMENT} | RECOVERABLE_STATUSES

FUNDING_NONE = "none"
FUNDING_AWAITING = "awaiting_funds"
FUNDING_FUNDED = "funded"

CONFIRMED_PAYMENT_STATUSES = {"paid", "succeeded", "authorized"}

_TRANSITIONS = {
    (STATUS_PENDING_PAYMENT, STATUS_PROCESSING),
    (STATUS_PROCESSING, STATUS_COMPLETED),
    (STATUS_PROCESSING, STATUS_SCHEDULED),
    (STATUS_PROCESSING, STATUS_AWAITING_FUNDS),
    (STATUS_PROCESSING, STATUS_REQUIRES_ATTENTION),
    (STATUS_PROCESSING, STATUS_FAILED),
    # Recovery paths
    (STATUS_AWAITING_FUNDS, STATUS_PROCESSING),
    (STATUS_SCHEDULED, STATUS_PROCESSING),
    (STATUS_REQUIRES_ATTENTION, STATUS_PROCESSING),
    # Vendor reports failure after acceptance
    (STATUS_COMPLETED, STATUS_REQUIRES_ATTENTION),
}


class OrderStateError(FulfillmentError):
    """Raised when an invalid status transition is attempted."""


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise OrderStateError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in _TRANSITIONS


def _require_transition(order: Order, to_status: str) -> None:
    if not can_transition(order.status, to_status):
        raise OrderStateError(
            f"Cannot move order {order.id} from '{order.status}' to '{to_status}'"
        )


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    return order


def get_order_notes(order_id: str) -> list[OrderNote]:
    return (
        db.session.query(OrderNote)
        .filter_by(order_id=order_id)
        .order_by(OrderNote.id)
        .all()
    )


def ensure_payment_confirmed(order: Order) -> None:
    """Refuse to proceed unless the payment webhook confirmed the charge."""
    if order.payment_status not in CONFIRMED_PAYMENT_STATUSES:
        raise PaymentNotConfirmedError(
            f"Order payment not confirmed: {order.payment_status}"
        )


# =============================================================================
# AUDIT TRAIL
# =============================================================================

def append_note(order_id: str, note_type: str, content: str, *, is_internal: bool = True) -> OrderNote:
    """Append an audit note (caller commits)."""
    note = OrderNote(
        order_id=order_id,
        note_type=note_type,
        note_content=content,
        is_internal=is_internal,
        created_at=utcnow(),
    )
    db.session.add(note)
    db.session.flush()
    return note


# =============================================================================
# TRANSITIONS
# =============================================================================

def _conditional_update(order_id: str, *conditions, values: dict) -> int:
    values = {**values, Order.updated_at: utcnow()}
    return guarded_update(Order, Order.id == order_id, *conditions, values=values, bump_version=True)


def claim_for_processing(order: Order, *, trigger_source: str) -> bool:
    """
    Atomically move a claimable order into processing.

    Returns:
        True if this caller owns the order now; False if another run already
        claimed or submitted it (nothing is changed in that case).
    """
    previous = order.status
    rows = _conditional_update(
        order.id,
        Order.zinc_request_id.is_(None),
        Order.status.in_(CLAIMABLE_STATUSES),
        values={Order.status: STATUS_PROCESSING},
    )
    if rows != 1:
        db.session.rollback()
        return False

    append_note(
        order.id,
        "processing_start",
        f"Order processing started via {trigger_source} (from {previous})",
    )
    db.session.commit()
    return True


def mark_requires_attention(
    order: Order,
    reason: str,
    *,
    details: dict | None = None,
    vendor_error=None,
    note_type: str = "validation_error",
) -> Order:
    """Park an order for a human; always records a readable reason."""
    _require_transition(order, STATUS_REQUIRES_ATTENTION)

    order.status = STATUS_REQUIRES_ATTENTION
    order.attention_reason = reason
    order.attention_details = details
    if vendor_error is not None:
        order.vendor_error = vendor_error
        if isinstance(vendor_error, dict) and vendor_error.get("message"):
            order.error_message = str(vendor_error["message"])
        else:
            order.error_message = reason
    else:
        # A validation park must not carry a previous run's vendor failure
        order.vendor_error = None
        order.error_message = None

    append_note(order.id, note_type, reason)
    db.session.commit()
    return order


def mark_deferred(
    order: Order,
    *,
    reason: str,
    expected_funding_date,
    scheduled_delivery_date,
) -> Order:
    """
    Defer submission until the funding pool is replenished.

    Scheduled-delivery orders land in `scheduled`, everything else in
    `awaiting_funds`. The caller commits (funding reservation shares the
    transaction).
    """
    target = STATUS_SCHEDULED if order.is_scheduled else STATUS_AWAITING_FUNDS
    _require_transition(order, target)

    order.status = target
    order.funding_status = FUNDING_AWAITING
    order.funding_hold_reason = reason
    order.expected_funding_date = expected_funding_date
    order.scheduled_delivery_date = scheduled_delivery_date

    append_note(order.id, "funding_hold", reason, is_internal=False)
    return order


def mark_funded(order: Order, *, note: str | None = None, note_type: str = "funding") -> Order:
    """Clear any funding hold (caller commits)."""
    order.funding_status = FUNDING_FUNDED
    order.funding_hold_reason = None
    order.expected_funding_date = None
    if note:
        append_note(order.id, note_type, note)
    return order


def assign_webhook_token(order: Order, token: str) -> None:
    order.webhook_token = token
    db.session.commit()


def record_submission(order: Order, request_id: str) -> bool:
    """
    Store the vendor request id and complete the order.

    Returns:
        False if a vendor id was already recorded (the existing id wins).
    """
    _require_transition(order, STATUS_COMPLETED)

    rows = _conditional_update(
        order.id,
        Order.zinc_request_id.is_(None),
        values={
            Order.zinc_request_id: request_id,
            Order.zinc_status: "submitted",
            Order.status: STATUS_COMPLETED,
            Order.submitted_at: utcnow(),
            Order.attention_reason: None,
            Order.attention_details: None,
            Order.vendor_error: None,
            Order.error_message: None,
        },
    )
    if rows != 1:
        db.session.rollback()
        return False

    append_note(
        order.id,
        "zma_success",
        f"Order successfully submitted to vendor. Request ID: {request_id}",
        is_internal=False,
    )
    db.session.commit()
    return True


def mark_failed(order_id: str, error: BaseException) -> None:
    """
    Record an unexpected failure with message and stack.

    Runs after a rollback, so it re-reads the order.
    """
    db.session.rollback()
    order = db.session.get(Order, order_id)
    if order is None:
        return

    message = str(error) or error.__class__.__name__
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    # Only a run that owns the order (processing, no vendor id) may fail it
    if order.status == STATUS_PROCESSING and order.zinc_request_id is None:
        order.status = STATUS_FAILED
        order.error_message = message
    append_note(order_id, "processing_error", f"Processing error: {message}\n{stack}")
    db.session.commit()


def list_orders_by_status(statuses, *, limit: int = 100) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.status.in_(list(statuses)))
        .order_by(Order.created_at)
        .limit(limit)
        .all()
    )
