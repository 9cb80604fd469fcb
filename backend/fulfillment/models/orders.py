from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


def _new_order_id() -> str:
    return str(uuid.uuid4())


class Order(db.Model):
    """
    Gift order awaiting (or past) vendor fulfillment.

    WHY: The order row is the only shared state between independently
    triggered pipeline runs (payment webhook, scheduled re-drive, admin
    force-process). Every run reads and writes through it.

    LIFECYCLE:
        pending_payment -> processing -> completed
                                      -> awaiting_funds | scheduled   (recoverable)
                                      -> requires_attention          (recoverable)
                                      -> failed

    IDEMPOTENCY: once zinc_request_id is set the order is never resubmitted.
    The id doubles as the vendor idempotency key.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_expected_funding", "status", "expected_funding_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_order_id)
    order_number = db.Column(db.String(64), nullable=False, unique=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, default="pending_payment", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)
    funding_status = db.Column(db.String(16), nullable=False, default="none", index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)

    # Schema-versioned payloads: flat list OR {"items": [...]}; legacy address keys
    line_items = db.Column(db.JSON, nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)

    is_gift = db.Column(db.Boolean, nullable=False, default=False)
    gift_message = db.Column(db.Text, nullable=True)
    is_scheduled = db.Column(db.Boolean, nullable=False, default=False)

    # Vendor identifiers (null until submitted)
    zinc_request_id = db.Column(db.String(128), nullable=True, unique=True)
    zinc_order_id = db.Column(db.String(128), nullable=True)
    zinc_status = db.Column(db.String(64), nullable=True)
    webhook_token = db.Column(db.String(128), nullable=True)
    tracking_data = db.Column(db.JSON, nullable=True)

    # Funding hold
    funding_hold_reason = db.Column(db.Text, nullable=True)
    expected_funding_date = db.Column(db.DateTime(timezone=True), nullable=True)
    scheduled_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Failure diagnostics
    attention_reason = db.Column(db.Text, nullable=True)
    attention_details = db.Column(db.JSON, nullable=True)
    vendor_error = db.Column(db.JSON, nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "funding_status": self.funding_status,
            "total_amount_cents": self.total_amount_cents,
            "line_items": self.line_items,
            "shipping_address": self.shipping_address,
            "is_gift": self.is_gift,
            "gift_message": self.gift_message,
            "is_scheduled": self.is_scheduled,
            "zinc_request_id": self.zinc_request_id,
            "zinc_order_id": self.zinc_order_id,
            "zinc_status": self.zinc_status,
            "tracking_data": self.tracking_data,
            "funding_hold_reason": self.funding_hold_reason,
            "expected_funding_date": to_utc_z(self.expected_funding_date),
            "scheduled_delivery_date": to_utc_z(self.scheduled_delivery_date),
            "attention_reason": self.attention_reason,
            "attention_details": self.attention_details,
            "vendor_error": self.vendor_error,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "submitted_at": to_utc_z(self.submitted_at),
        }


class OrderNote(db.Model):
    """
    Append-only audit trail for an order.

    Every state transition, rate-limit block and funding decision writes one
    row. Rows are never updated or deleted.
    """
    __tablename__ = "order_notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    note_type = db.Column(db.String(32), nullable=False, index=True)
    note_content = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("notes", lazy=True, order_by="OrderNote.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "note_type": self.note_type,
            "note_content": self.note_content,
            "is_internal": self.is_internal,
            "created_at": to_utc_z(self.created_at),
        }
