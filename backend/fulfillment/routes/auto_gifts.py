# backend/fulfillment/routes/auto_gifts.py
"""
Auto-gift routes.

- POST /api/auto-gifts/recommendations - rank candidates for a rule/event
- POST /api/auto-gifts/approve         - approved recommendation -> pending_payment order

Candidate products are supplied by the caller (the product search runs
elsewhere).
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_admin_token
from ..services import auto_gift_service
from ..services.auto_gift_service import AutoGiftError


auto_gifts_bp = Blueprint("auto_gifts", __name__, url_prefix="/api/auto-gifts")


@auto_gifts_bp.post("/recommendations")
@require_admin_token
def recommendations_route():
    """
    Request body:
        {
            "rule": {"id", "budget_limit_cents", "relationship_type", "categories", "exclude_items"},
            "event": {"id", "date_type", "recipient_birth_year"},
            "candidates": [{"product_id", "name", "price_cents", "category"}],
            "settings": {"auto_approve_gifts": true}
        }

    Response:
        200: {"recommendation": {...}} or {"recommendation": null} when nothing qualifies
    """
    data = request.get_json(silent=True) or {}
    rule = data.get("rule")
    event = data.get("event")
    candidates = data.get("candidates")
    if not isinstance(rule, dict) or not isinstance(event, dict) or not isinstance(candidates, list):
        return jsonify({"error": "rule, event and candidates are required"}), 400

    try:
        recommendation = auto_gift_service.generate_recommendation(
            rule, event, candidates, settings=data.get("settings") or {}
        )
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to generate auto-gift recommendation")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"recommendation": recommendation.to_dict() if recommendation else None}), 200


@auto_gifts_bp.post("/approve")
@require_admin_token
def approve_route():
    """
    Request body:
        {
            "userId": "purchaser",
            "approved": true,
            "recommendation": {...},           // as returned by /recommendations
            "selectedProductIds": ["B0..."],   // Optional subset
            "shippingAddress": {...},
            "recipient": {"name", "phone", "shipping_address"},  // Optional
            "giftMessage": "Happy birthday!",  // Optional
            "limits": {"monthly_limit_cents", "annual_limit_cents"}  // Optional
        }
    """
    data = request.get_json(silent=True) or {}
    user_id = data.get("userId")
    recommendation = data.get("recommendation")
    if not user_id or not isinstance(recommendation, dict):
        return jsonify({"error": "userId and recommendation are required"}), 400

    if not data.get("approved", False):
        return jsonify({"success": True, "approved": False, "orderId": None}), 200

    try:
        order = auto_gift_service.create_order_from_recommendation(
            user_id,
            recommendation,
            shipping_address=data.get("shippingAddress") or {},
            selected_product_ids=data.get("selectedProductIds"),
            gift_message=data.get("giftMessage"),
            recipient=data.get("recipient"),
            limits=data.get("limits"),
        )
    except AutoGiftError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to approve auto-gift recommendation")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify({"success": True, "approved": True, "orderId": order.id, "order": order.to_dict()}), 201
