# backend/fulfillment/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Order, FundingPool
from ..services.order_state_service import STATUS_REQUIRES_ATTENTION, STATUS_AWAITING_FUNDS
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and report queue depths.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        attention = db.session.query(Order).filter_by(status=STATUS_REQUIRES_ATTENTION).count()
        awaiting = db.session.query(Order).filter_by(status=STATUS_AWAITING_FUNDS).count()
        pools = db.session.query(FundingPool).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders_requiring_attention": attention,
                "orders_awaiting_funds": awaiting,
                "funding_pools": pools,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_vendor_config() -> dict:
    """Vendor credentials present; no outbound call is made."""
    if not current_app.config.get("ZINC_API_KEY"):
        return {"status": "degraded", "warning": "ZINC_API_KEY is not configured"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    vendor_health = check_vendor_config()

    all_checks = [database_health, vendor_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "vendor": vendor_health,
        }
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info for debugging."""
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
