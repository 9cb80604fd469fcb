# backend/fulfillment/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fulfillment.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///fulfillment.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Vendor (Zinc) API
    ZINC_API_KEY = os.environ.get("ZINC_API_KEY", "")
    ZINC_API_BASE_URL = os.environ.get("ZINC_API_BASE_URL", "https://api.zinc.io/v1")
    ZINC_RETAILER = os.environ.get("ZINC_RETAILER", "amazon")
    ZINC_TIMEOUT_SECONDS = _env_float("ZINC_TIMEOUT_SECONDS", 20.0)

    # max_price = subtotal * buffer + allowance (vendor adds shipping/tax)
    ZINC_MAX_PRICE_BUFFER = _env_float("ZINC_MAX_PRICE_BUFFER", 1.10)
    ZINC_MAX_PRICE_ALLOWANCE_CENTS = _env_int("ZINC_MAX_PRICE_ALLOWANCE_CENTS", 1500)

    # Public base URL the vendor calls back into
    WEBHOOK_BASE_URL = os.environ.get("WEBHOOK_BASE_URL", "http://localhost:5000")

    # Shared secret for trusted callers (force-process, re-drive)
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "")

    # Funding pool gate
    FUNDING_POOL_NAME = os.environ.get("FUNDING_POOL_NAME", "zma-default")
    FUNDING_BUFFER_MULTIPLIER = _env_float("FUNDING_BUFFER_MULTIPLIER", 1.10)
    FUNDING_SAFETY_MARGIN_CENTS = _env_int("FUNDING_SAFETY_MARGIN_CENTS", 5000)
    FUNDING_SETTLEMENT_DELAY_DAYS = _env_int("FUNDING_SETTLEMENT_DELAY_DAYS", 2)
    FUNDING_PROCESSING_OFFSET_DAYS = _env_int("FUNDING_PROCESSING_OFFSET_DAYS", 3)

    # Per-user submission rate limit
    SUBMISSION_RATE_LIMIT = _env_int("SUBMISSION_RATE_LIMIT", 10)
    SUBMISSION_RATE_WINDOW_MINUTES = _env_int("SUBMISSION_RATE_WINDOW_MINUTES", 60)

    # Auto-gift approval
    AUTO_GIFT_APPROVAL_THRESHOLD_CENTS = _env_int("AUTO_GIFT_APPROVAL_THRESHOLD_CENTS", 7500)

    # Outbox worker
    OUTBOX_MAX_ATTEMPTS = _env_int("OUTBOX_MAX_ATTEMPTS", 5)
