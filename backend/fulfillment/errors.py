# Overview: Domain error types shared across the fulfillment services and routes.

from __future__ import annotations


class FulfillmentError(ValueError):
    """Base for domain errors raised by the pipeline (not technical failures)."""


class OrderNotFoundError(FulfillmentError):
    """404-level: no order with the given id."""


class PaymentNotConfirmedError(FulfillmentError):
    """400-level: the order's payment has not reached a confirmed state."""


class WebhookAuthError(FulfillmentError):
    """403-level: inbound webhook token does not match the order."""
