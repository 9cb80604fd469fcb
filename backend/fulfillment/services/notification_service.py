# Overview: Email queue inserts and the outbox worker for deferred side effects.

"""
Notifications & Outbox

WHY: Side effects after a vendor submission (wishlist "someone bought your
item" emails) must never influence the submission result. The submission
path only writes an OutboxEvent; a separate worker (`flask outbox process`)
does the actual work later.

DESIGN:
- enqueue_outbox_event() runs inside a SAVEPOINT; a failure rolls back the
  savepoint only and is logged
- process_outbox_events() handles each event in its own transaction; failures
  bump attempts and record last_error, FAILED after OUTBOX_MAX_ATTEMPTS
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import NotificationQueueEntry, OutboxEvent, WishlistItem, CustomerProfile
from ..time_utils import utcnow


EVENT_WISHLIST_PURCHASE_CHECK = "wishlist_purchase_check"

EMAIL_WISHLIST_ITEM_PURCHASED = "wishlist_item_purchased"

STATUS_PENDING = "PENDING"
STATUS_DONE = "DONE"
STATUS_FAILED = "FAILED"


def queue_notification(recipient: str, event_type: str, variables: dict | None = None) -> NotificationQueueEntry:
    """Insert an email request (caller commits)."""
    entry = NotificationQueueEntry(
        recipient=recipient,
        event_type=event_type,
        variables=variables or {},
        status=STATUS_PENDING,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def enqueue_outbox_event(event_type: str, payload: dict) -> OutboxEvent | None:
    """
    Best-effort enqueue; never raises on database errors.

    Returns:
        The committed OutboxEvent, or None if the insert failed
    """
    try:
        with db.session.begin_nested():
            event = OutboxEvent(event_type=event_type, payload=payload, status=STATUS_PENDING, attempts=0)
            db.session.add(event)
        db.session.commit()
        return event
    except SQLAlchemyError:
        current_app.logger.warning("Could not enqueue %s event", event_type, exc_info=True)
        db.session.rollback()
        return None


# =============================================================================
# HANDLERS
# =============================================================================

def _handle_wishlist_purchase_check(payload: dict) -> int:
    """
    Mark public wishlist items matching the purchased products and email owners.

    Returns:
        Number of wishlist items marked purchased
    """
    product_ids = [pid for pid in payload.get("product_ids") or [] if pid]
    if not product_ids:
        return 0

    matches = (
        db.session.query(WishlistItem)
        .filter(
            WishlistItem.product_id.in_(product_ids),
            WishlistItem.is_public.is_(True),
            WishlistItem.purchased_at.is_(None),
            WishlistItem.owner_user_id != payload.get("purchaser_user_id"),
        )
        .all()
    )

    now = utcnow()
    for item in matches:
        item.purchased_at = now
        owner = db.session.get(CustomerProfile, item.owner_user_id)
        if owner and owner.email:
            queue_notification(
                owner.email,
                EMAIL_WISHLIST_ITEM_PURCHASED,
                {
                    "wishlist_item_id": item.id,
                    "product_id": item.product_id,
                    "title": item.title,
                    "order_id": payload.get("order_id"),
                },
            )
    return len(matches)


HANDLERS = {
    EVENT_WISHLIST_PURCHASE_CHECK: _handle_wishlist_purchase_check,
}


def process_outbox_events(*, limit: int = 50) -> dict:
    """
    Drain pending outbox events.

    Returns:
        {"processed": n, "failed": n, "retrying": n}
    """
    max_attempts = int(current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5))
    events = (
        db.session.query(OutboxEvent)
        .filter(OutboxEvent.status == STATUS_PENDING)
        .order_by(OutboxEvent.id)
        .limit(limit)
        .all()
    )

    summary = {"processed": 0, "failed": 0, "retrying": 0}
    for event in events:
        event_id = event.id
        handler = HANDLERS.get(event.event_type)
        try:
            if handler is None:
                raise ValueError(f"No handler for outbox event type: {event.event_type}")
            handler(event.payload or {})
            event.status = STATUS_DONE
            event.attempts += 1
            event.processed_at = utcnow()
            db.session.commit()
            summary["processed"] += 1
        except (SQLAlchemyError, ValueError) as exc:
            db.session.rollback()
            current_app.logger.warning("Outbox event %s failed: %s", event_id, exc)
            event = db.session.get(OutboxEvent, event_id)
            event.attempts += 1
            event.last_error = str(exc)
            if event.attempts >= max_attempts:
                event.status = STATUS_FAILED
                summary["failed"] += 1
            else:
                summary["retrying"] += 1
            db.session.commit()

    return summary
