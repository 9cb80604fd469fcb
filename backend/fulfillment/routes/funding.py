# backend/fulfillment/routes/funding.py
"""
Funding pool admin routes.

- GET  /api/funding/summary  - balance vs. orders awaiting funds
- POST /api/funding/redrive  - re-run due awaiting_funds / scheduled orders
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_admin_token
from ..services import funding_service, redrive_service


funding_bp = Blueprint("funding", __name__, url_prefix="/api/funding")


@funding_bp.get("/summary")
@require_admin_token
def funding_summary_route():
    """
    Response:
        {
            "current_balance_cents": 12000,
            "orders_waiting": 3,
            "pending_orders_value_cents": 50000,
            "shortfall_cents": 38000,
            "recommended_transfer_cents": 41800,   // shortfall * 1.1, rounded up
            ...
        }
    """
    try:
        return jsonify(funding_service.get_funding_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to build funding summary")
        return jsonify({"error": "Internal server error"}), 500


@funding_bp.post("/redrive")
@require_admin_token
def redrive_route():
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get("limit", 50))
    except (TypeError, ValueError):
        return jsonify({"error": "limit must be an integer"}), 400

    try:
        results = redrive_service.redrive_due_orders(limit=limit)
    except Exception:
        current_app.logger.exception("Failed to re-drive deferred orders")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"results": results, "count": len(results)}), 200
