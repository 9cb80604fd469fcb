# Overview: Re-drives deferred orders whose expected funding date has passed.

"""
Scheduled Re-drive

Orders parked in awaiting_funds / scheduled carry an expected_funding_date.
An external scheduler (cron calling `flask funding redrive` or
POST /api/funding/redrive) sends each due order back through the pipeline
exactly like a payment confirmation would.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Order
from ..time_utils import utcnow
from . import order_state_service
from .order_processing_service import process_order, TRIGGER_REDRIVE
from .zinc_client import ZincClient


DEFERRED_STATUSES = (order_state_service.STATUS_AWAITING_FUNDS, order_state_service.STATUS_SCHEDULED)


def due_orders(*, now: datetime | None = None, limit: int = 50) -> list[Order]:
    now = now or utcnow()
    return (
        db.session.query(Order)
        .filter(
            Order.status.in_(DEFERRED_STATUSES),
            Order.zinc_request_id.is_(None),
            Order.expected_funding_date.isnot(None),
            Order.expected_funding_date <= now,
        )
        .order_by(Order.expected_funding_date, Order.created_at)
        .limit(limit)
        .all()
    )


def redrive_due_orders(
    *,
    now: datetime | None = None,
    limit: int = 50,
    client: ZincClient | None = None,
) -> list[dict]:
    """
    Re-run the pipeline for every due deferred order.

    Returns:
        One {"orderId", "httpStatus", "result"} entry per order attempted
    """
    order_ids = [order.id for order in due_orders(now=now, limit=limit)]
    results = []
    for order_id in order_ids:
        result = process_order(order_id, trigger_source=TRIGGER_REDRIVE, client=client)
        results.append({"orderId": order_id, "httpStatus": result.http_status, "result": result.body})
    return results
