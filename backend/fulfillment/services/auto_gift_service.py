# Overview: Auto-gift recommendations, approval rules, spending limits and order creation.

"""
Auto-Gift Recommendation Engine

WHY: Auto-gifting rules buy on the purchaser's behalf. The engine ranks
candidates for one rule/event and decides whether a human must approve
before an order is created.

MANUAL APPROVAL is required when ANY of:
- auto-approval is disabled in the purchaser's settings
- total exceeds AUTO_GIFT_APPROVAL_THRESHOLD_CENTS ($75)
- total exceeds the rule's own budget limit

An approved recommendation becomes a pending_payment Order; the normal
pipeline takes over once payment is confirmed.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import FulfillmentError
from ..extensions import db
from ..models import Order
from ..time_utils import utcnow, to_utc_z, parse_iso_datetime, start_of_month, start_of_year
from . import gift_selection_service as selection
from . import order_state_service


MAX_RECOMMENDATIONS = 3
APPROVAL_WINDOW_HOURS = 24
LIMIT_WARNING_RATIO = 0.8


class AutoGiftError(FulfillmentError):
    """Recommendation or approval request cannot be honored."""


@dataclass
class Recommendation:
    rule_id: str | None
    event_id: str | None
    products: list[dict]
    total_amount_cents: int
    needs_approval: bool
    approval_deadline: datetime
    search_query: str
    categories: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ruleId": self.rule_id,
            "eventId": self.event_id,
            "products": self.products,
            "totalAmountCents": self.total_amount_cents,
            "needsApproval": self.needs_approval,
            "approvalDeadline": to_utc_z(self.approval_deadline),
            "searchQuery": self.search_query,
            "categories": self.categories,
        }


@dataclass
class SpendingCheck:
    within_limits: bool
    warnings: list[str] = field(default_factory=list)


def _approval_threshold_cents() -> int:
    return int(current_app.config.get("AUTO_GIFT_APPROVAL_THRESHOLD_CENTS", 7500))


def needs_manual_approval(total_cents: int, *, rule_budget_cents: int | None, auto_approve: bool) -> bool:
    if not auto_approve:
        return True
    if total_cents > _approval_threshold_cents():
        return True
    if rule_budget_cents and total_cents > rule_budget_cents:
        return True
    return False


def generate_recommendation(
    rule: dict,
    event: dict,
    candidates: list[dict],
    *,
    settings: dict | None = None,
    now: datetime | None = None,
) -> Recommendation | None:
    """
    Rank candidates for one auto-gifting rule and event.

    Args:
        rule: {"id", "budget_limit_cents", "relationship_type", "categories", "exclude_items"}
        event: {"id", "date_type", "recipient_birth_year"}
        candidates: products from the external search
        settings: purchaser settings, {"auto_approve_gifts": bool}

    Returns:
        Recommendation with the top three candidates, or None when nothing
        survives filtering
    """
    settings = settings or {}
    now = now or utcnow()
    rule_budget = int(rule.get("budget_limit_cents") or 10000)

    criteria = selection.build_criteria(
        rule.get("relationship_type") or "friend",
        rule_budget,
        rule.get("categories") or [],
        event.get("recipient_birth_year"),
        event.get("date_type") or "birthday",
        rule.get("exclude_items") or [],
        today=now.date(),
    )

    ranked = [
        {
            **product,
            "confidence": selection.score_candidate(product, criteria, today=now.date()),
            "reasoning": selection.reasoning(product, criteria, today=now.date()),
        }
        for product in selection.filter_candidates(candidates or [], criteria)
    ]
    ranked.sort(key=lambda p: p["confidence"], reverse=True)
    top = ranked[:MAX_RECOMMENDATIONS]
    if not top:
        return None

    total = sum(int(p.get("price_cents") or 0) for p in top)
    return Recommendation(
        rule_id=rule.get("id"),
        event_id=event.get("id"),
        products=top,
        total_amount_cents=total,
        needs_approval=needs_manual_approval(
            total,
            rule_budget_cents=rule_budget,
            auto_approve=bool(settings.get("auto_approve_gifts", False)),
        ),
        approval_deadline=now + timedelta(hours=APPROVAL_WINDOW_HOURS),
        search_query=selection.search_query(criteria, today=now.date()),
        categories=criteria.gift_categories,
    )


# =============================================================================
# SPENDING LIMITS
# =============================================================================

def _spent_since(user_id: str, since: datetime) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Order.total_amount_cents), 0))
        .filter(
            Order.user_id == user_id,
            Order.created_at >= since,
            Order.status != order_state_service.STATUS_FAILED,
        )
        .scalar()
    )
    return int(total or 0)


def check_spending_limits(user_id: str, amount_cents: int, limits: dict | None, *, now: datetime | None = None) -> SpendingCheck:
    """
    Compare a prospective spend against monthly/annual limits.

    limits: {"monthly_limit_cents"?, "annual_limit_cents"?}. Spend so far is
    summed from the purchaser's non-failed orders.
    """
    limits = limits or {}
    now = now or utcnow()
    warnings: list[str] = []

    periods = (
        ("monthly", limits.get("monthly_limit_cents"), start_of_month(now)),
        ("annual", limits.get("annual_limit_cents"), start_of_year(now)),
    )
    for label, limit, since in periods:
        if not limit:
            continue
        limit = int(limit)
        projected = _spent_since(user_id, since) + amount_cents
        if projected > limit:
            warnings.append(f"Would exceed {label} limit of ${limit / 100:,.2f}")
            return SpendingCheck(within_limits=False, warnings=warnings)
        if projected > limit * LIMIT_WARNING_RATIO:
            warnings.append(f"Approaching {label} limit of ${limit / 100:,.2f}")

    return SpendingCheck(within_limits=True, warnings=warnings)


# =============================================================================
# APPROVAL -> ORDER
# =============================================================================

def _order_number() -> str:
    return f"AG-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


def create_order_from_recommendation(
    user_id: str,
    recommendation: dict,
    *,
    shipping_address: dict,
    selected_product_ids: list[str] | None = None,
    gift_message: str | None = None,
    recipient: dict | None = None,
    limits: dict | None = None,
    now: datetime | None = None,
) -> Order:
    """
    Turn an approved recommendation (as returned by to_dict) into an order.

    Raises:
        AutoGiftError: deadline passed, nothing selected, or spending limit hit
    """
    now = now or utcnow()
    raw_deadline = recommendation.get("approvalDeadline")
    if raw_deadline is not None and not isinstance(raw_deadline, str):
        raise AutoGiftError("approvalDeadline must be an ISO-8601 timestamp")
    try:
        deadline = parse_iso_datetime(raw_deadline)
    except ValueError:
        raise AutoGiftError(f"approvalDeadline is not an ISO-8601 timestamp: {raw_deadline!r}")
    if deadline is not None and now > deadline:
        raise AutoGiftError("Approval deadline has passed")

    products = recommendation.get("products") or []
    if selected_product_ids:
        wanted = set(selected_product_ids)
        products = [p for p in products if p.get("product_id") in wanted]
    if not products:
        raise AutoGiftError("No products selected")

    total = sum(int(p.get("price_cents") or 0) for p in products)
    check = check_spending_limits(user_id, total, limits, now=now)
    if not check.within_limits:
        raise AutoGiftError("; ".join(check.warnings))

    assignment = None
    if recipient:
        assignment = {
            "name": recipient.get("name"),
            "phone": recipient.get("phone"),
            "shipping_address": recipient.get("shipping_address"),
        }

    items = [
        {
            "product_id": p.get("product_id"),
            "quantity": 1,
            "unit_price_cents": int(p.get("price_cents") or 0),
            "title": p.get("name"),
            "is_gift": True,
            "recipient_assignment": assignment,
        }
        for p in products
    ]

    order = Order(
        order_number=_order_number(),
        user_id=user_id,
        status=order_state_service.STATUS_PENDING_PAYMENT,
        payment_status="unpaid",
        funding_status=order_state_service.FUNDING_NONE,
        total_amount_cents=total,
        line_items={"items": items},
        shipping_address=shipping_address,
        is_gift=True,
        gift_message=gift_message,
        is_scheduled=True,
    )
    db.session.add(order)
    db.session.flush()
    order_state_service.append_note(
        order.id,
        "auto_gift",
        f"Created from auto-gift recommendation (rule {recommendation.get('ruleId')}, "
        f"event {recommendation.get('eventId')})",
    )
    for warning in check.warnings:
        order_state_service.append_note(order.id, "auto_gift", warning)
    db.session.commit()
    return order
