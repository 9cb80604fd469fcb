# backend/fulfillment/routes/webhooks.py
"""
Inbound vendor webhooks.

SECURITY: no session. The per-order token registered with the vendor is the
only credential; it travels in the query string of each callback URL.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import OrderNotFoundError, WebhookAuthError
from ..services import webhook_service
from ..services.order_state_service import OrderStateError
from ..services.webhook_service import UnknownWebhookEventError


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.post("/zinc")
def zinc_webhook_route():
    """
    Apply a vendor event to its order.

    Query params:
        orderId, token, event

    Error responses:
        400: missing params or unknown event
        403: token mismatch
        404: order not found
        409: event cannot be applied in the order's current status
    """
    order_id = request.args.get("orderId")
    token = request.args.get("token")
    event = request.args.get("event")
    if not order_id or not event:
        return jsonify({"error": "orderId and event are required"}), 400

    payload = request.get_json(silent=True) or {}

    try:
        order = webhook_service.handle_zinc_webhook(order_id, token, event, payload)
        return jsonify({"received": True, "status": order.status, "zinc_status": order.zinc_status}), 200

    except WebhookAuthError as e:
        return jsonify({"error": str(e)}), 403
    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UnknownWebhookEventError as e:
        return jsonify({"error": str(e)}), 400
    except OrderStateError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to handle vendor webhook")
        return jsonify({"error": "Internal server error"}), 500
