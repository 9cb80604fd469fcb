# backend/fulfillment/routes/orders.py
"""
Order Processing API Routes

- POST /api/orders/process                 - Payment confirmation / re-drive trigger
- POST /api/orders/<id>/force-process      - Admin force action (may bypass funding)
- GET  /api/orders/<id>                    - Order with its audit notes (admin)
- GET  /api/orders/attention               - Orders parked for a human (admin)

WHY 200 FOR RECOVERABLE OUTCOMES:
- Validation failures, funding holds and vendor rejections are recorded on
  the order and answered with 200 + success:false, so callers do not
  retry-storm an order that needs a human or more funds.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import OrderNotFoundError
from ..decorators import require_admin_token
from ..services import order_state_service
from ..services.order_processing_service import (
    process_order,
    TRIGGER_PAYMENT,
    TRIGGER_ADMIN,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/process")
def process_order_route():
    """
    Run the fulfillment pipeline for one order.

    Request body:
        {
            "orderId": "uuid",             // Required
            "triggerSource": "payment_webhook"  // Optional, recorded in notes
        }

    Response:
        200: {"success": true, "zincRequestId": ...}      (submitted / already submitted)
        200: {"success": false, "deferred": true, ...}    (awaiting funds)
        200: {"success": false, "errorCode": ...}         (requires attention)
        400: missing orderId or payment not confirmed
        404: order not found
        409: another run is processing the order
        429: purchaser rate limit exceeded
        500: unexpected failure (order marked failed)
    """
    data = request.get_json(silent=True) or {}
    order_id = data.get("orderId") or data.get("order_id")
    trigger_source = data.get("triggerSource") or TRIGGER_PAYMENT

    try:
        result = process_order(order_id, trigger_source=str(trigger_source))
    except Exception:
        current_app.logger.exception("Failed to process order")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify(result.body), result.http_status


@orders_bp.post("/<order_id>/force-process")
@require_admin_token
def force_process_order_route(order_id: str):
    """
    Trusted re-run of the pipeline, optionally skipping the funding gate.

    Request body:
        {"bypassFundingCheck": true}   // Optional, default false
    """
    data = request.get_json(silent=True) or {}
    bypass = bool(data.get("bypassFundingCheck", False))

    try:
        result = process_order(order_id, trigger_source=TRIGGER_ADMIN, bypass_funding_check=bypass)
    except Exception:
        current_app.logger.exception("Failed to force-process order")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify(result.body), result.http_status


@orders_bp.get("/attention")
@require_admin_token
def list_attention_orders_route():
    """
    Orders in requires_attention with the specific missing/invalid fields.

    Query params:
        limit: max rows (default 100)
    """
    try:
        limit = int(request.args.get("limit", 100))
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400

    orders = order_state_service.list_orders_by_status(
        [order_state_service.STATUS_REQUIRES_ATTENTION], limit=limit
    )
    return jsonify({
        "orders": [
            {
                "id": o.id,
                "order_number": o.order_number,
                "attention_reason": o.attention_reason,
                "attention_details": o.attention_details,
                "error_message": o.error_message,
                "vendor_error": o.vendor_error,
                "updated_at": o.to_dict()["updated_at"],
            }
            for o in orders
        ],
        "count": len(orders),
    }), 200


@orders_bp.get("/<order_id>")
@require_admin_token
def get_order_route(order_id: str):
    try:
        order = order_state_service.get_order(order_id)
    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    notes = order_state_service.get_order_notes(order.id)
    return jsonify({
        "order": order.to_dict(),
        "notes": [n.to_dict() for n in notes],
    }), 200
