# Overview: Funding gate over the shared prepaid (ZMA) pool, backed by a reservation ledger.

"""
Funding Gate

WHY: Vendor purchases are paid from one prepaid balance. Submitting an order
the balance cannot cover gets it rejected vendor-side, so orders are deferred
until the pool is topped up.

FORMULA:
    available = balance - committed - safety_margin
    required  = amount * buffer_multiplier          (vendor markup / tax)
    proceed iff required <= available

LEDGER:
- committed_cents on the pool row is the sum reserved by deferred orders
- COMMIT when an order is deferred, RELEASE when a deferred order is funded
- The pool row is locked for the whole decision, so two orders cannot both
  spend the same headroom
- A re-evaluated order's own reservation is excluded from `committed`

FAILURE POLICY:
- Balance lookup errors fail OPEN: the order proceeds with a funding_warning note.
- A bypass (trusted caller only) skips the gate and marks the order funded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_CEILING

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import FundingPool, FundingLedgerEntry, Order
from ..time_utils import utcnow, days_from
from . import order_state_service
from .concurrency import lock_for_update, run_with_retry
from .zinc_client import ZincClient, BalanceUnavailableError


ENTRY_COMMIT = "COMMIT"
ENTRY_RELEASE = "RELEASE"
ENTRY_BYPASS = "BYPASS"
ENTRY_BALANCE_SYNC = "BALANCE_SYNC"


@dataclass
class FundingDecision:
    proceed: bool
    required_cents: int
    available_cents: int | None
    expected_funding_date: datetime | None = None
    scheduled_delivery_date: datetime | None = None
    warning: str | None = None
    bypassed: bool = False


# =============================================================================
# PURE CALCULATIONS
# =============================================================================

def required_cents(amount_cents: int, buffer_multiplier: float) -> int:
    """Order amount grown by the markup buffer, rounded up to the cent."""
    scaled = Decimal(amount_cents) * Decimal(str(buffer_multiplier))
    return int(scaled.to_integral_value(rounding=ROUND_CEILING))


def available_cents(balance_cents: int, committed_cents: int, safety_margin_cents: int) -> int:
    return balance_cents - committed_cents - safety_margin_cents


def evaluate(
    amount_cents: int,
    *,
    balance_cents: int,
    committed_cents: int,
    buffer_multiplier: float,
    safety_margin_cents: int,
    settlement_delay_days: int,
    processing_offset_days: int,
    now: datetime,
) -> FundingDecision:
    """
    Decide proceed vs defer for one amount against one pool snapshot.

    Monotonic in amount: for a fixed snapshot, once an amount defers every
    larger amount defers too.
    """
    required = required_cents(amount_cents, buffer_multiplier)
    available = available_cents(balance_cents, committed_cents, safety_margin_cents)

    if required <= available:
        return FundingDecision(proceed=True, required_cents=required, available_cents=available)

    expected = days_from(now, settlement_delay_days)
    return FundingDecision(
        proceed=False,
        required_cents=required,
        available_cents=available,
        expected_funding_date=expected,
        scheduled_delivery_date=days_from(expected, processing_offset_days),
    )


def _gate_settings() -> dict:
    cfg = current_app.config
    return {
        "buffer_multiplier": float(cfg.get("FUNDING_BUFFER_MULTIPLIER", 1.10)),
        "safety_margin_cents": int(cfg.get("FUNDING_SAFETY_MARGIN_CENTS", 5000)),
        "settlement_delay_days": int(cfg.get("FUNDING_SETTLEMENT_DELAY_DAYS", 2)),
        "processing_offset_days": int(cfg.get("FUNDING_PROCESSING_OFFSET_DAYS", 3)),
    }


# =============================================================================
# POOL LEDGER
# =============================================================================

def get_or_create_pool(name: str | None = None) -> FundingPool:
    """Idempotent: returns the named pool, creating it with a zero balance."""
    name = name or current_app.config.get("FUNDING_POOL_NAME", "zma-default")
    pool = db.session.query(FundingPool).filter_by(name=name).first()
    if pool:
        return pool
    pool = FundingPool(name=name, balance_cents=0, committed_cents=0)
    db.session.add(pool)
    db.session.flush()
    return pool


def _locked_pool() -> FundingPool:
    name = current_app.config.get("FUNDING_POOL_NAME", "zma-default")
    pool = lock_for_update(db.session.query(FundingPool).filter_by(name=name)).first()
    if pool is None:
        pool = get_or_create_pool(name)
    return pool


def _append_entry(pool: FundingPool, entry_type: str, amount_cents: int, *, order_id=None, note=None):
    entry = FundingLedgerEntry(
        pool_id=pool.id,
        order_id=order_id,
        entry_type=entry_type,
        amount_cents=amount_cents,
        committed_after_cents=pool.committed_cents,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def outstanding_commitment_cents(pool_id: int, order_id: str) -> int:
    """Net amount this order currently holds in the pool (COMMIT - RELEASE)."""
    rows = (
        db.session.query(FundingLedgerEntry.entry_type, func.coalesce(func.sum(FundingLedgerEntry.amount_cents), 0))
        .filter(
            FundingLedgerEntry.pool_id == pool_id,
            FundingLedgerEntry.order_id == order_id,
            FundingLedgerEntry.entry_type.in_([ENTRY_COMMIT, ENTRY_RELEASE]),
        )
        .group_by(FundingLedgerEntry.entry_type)
        .all()
    )
    totals = {entry_type: int(total) for entry_type, total in rows}
    return totals.get(ENTRY_COMMIT, 0) - totals.get(ENTRY_RELEASE, 0)


def _release(pool: FundingPool, order: Order, note: str) -> int:
    held = outstanding_commitment_cents(pool.id, order.id)
    if held > 0:
        pool.committed_cents = max(pool.committed_cents - held, 0)
        _append_entry(pool, ENTRY_RELEASE, held, order_id=order.id, note=note)
    return held


def _sync_balance(pool: FundingPool, balance_cents: int) -> None:
    if pool.balance_cents != balance_cents:
        delta = balance_cents - pool.balance_cents
        pool.balance_cents = balance_cents
        _append_entry(pool, ENTRY_BALANCE_SYNC, delta, note="Balance refreshed from vendor")
    pool.balance_checked_at = utcnow()


def set_pool_balance(balance_cents: int) -> FundingPool:
    """Record an externally settled balance (admin CLI / settlement sync)."""
    def _op():
        pool = _locked_pool()
        _sync_balance(pool, balance_cents)
        db.session.commit()
        return pool
    return run_with_retry(_op)


# =============================================================================
# GATE
# =============================================================================

def apply_funding_gate(
    order: Order,
    *,
    bypass: bool = False,
    client: ZincClient | None = None,
    now: datetime | None = None,
) -> FundingDecision:
    """
    Run the funding gate for an order that is in processing.

    On defer the order is moved to awaiting_funds/scheduled and its amount is
    committed in the pool ledger, all in one transaction. On proceed any
    earlier reservation is released and the order is marked funded.
    """
    settings = _gate_settings()
    amount = order.total_amount_cents
    required = required_cents(amount, settings["buffer_multiplier"])

    if bypass:
        def _bypass_op():
            pool = _locked_pool()
            _release(pool, order, "Released by funding bypass")
            _append_entry(pool, ENTRY_BYPASS, amount, order_id=order.id, note="Funding check bypassed")
            order_state_service.mark_funded(
                order,
                note="Funding check bypassed by trusted caller",
                note_type="funding_bypass",
            )
            db.session.commit()
        run_with_retry(_bypass_op)
        return FundingDecision(proceed=True, required_cents=required, available_cents=None, bypassed=True)

    client = client or ZincClient.from_app()
    try:
        balance = client.get_balance_cents()
    except BalanceUnavailableError as exc:
        warning = f"Funding balance unavailable, proceeding without check: {exc}"
        current_app.logger.warning("Order %s: %s", order.id, warning)

        def _fail_open_op():
            pool = _locked_pool()
            _release(pool, order, "Released on fail-open funding check")
            order_state_service.mark_funded(order, note=warning, note_type="funding_warning")
            db.session.commit()
        run_with_retry(_fail_open_op)
        return FundingDecision(proceed=True, required_cents=required, available_cents=None, warning=warning)

    now = now or utcnow()

    def _gate_op() -> FundingDecision:
        pool = _locked_pool()
        _sync_balance(pool, balance)

        held = outstanding_commitment_cents(pool.id, order.id)
        committed_by_others = max(pool.committed_cents - held, 0)

        decision = evaluate(
            amount,
            balance_cents=pool.balance_cents,
            committed_cents=committed_by_others,
            buffer_multiplier=settings["buffer_multiplier"],
            safety_margin_cents=settings["safety_margin_cents"],
            settlement_delay_days=settings["settlement_delay_days"],
            processing_offset_days=settings["processing_offset_days"],
            now=now,
        )

        if decision.proceed:
            _release(pool, order, "Order funded")
            order_state_service.mark_funded(order)
        else:
            if held <= 0:
                pool.committed_cents += amount
                _append_entry(pool, ENTRY_COMMIT, amount, order_id=order.id, note="Order deferred awaiting funds")
            reason = (
                f"Insufficient funding pool balance: requires ${decision.required_cents / 100:,.2f}, "
                f"available ${decision.available_cents / 100:,.2f}"
            )
            order_state_service.mark_deferred(
                order,
                reason=reason,
                expected_funding_date=decision.expected_funding_date,
                scheduled_delivery_date=decision.scheduled_delivery_date,
            )

        db.session.commit()
        return decision

    return run_with_retry(_gate_op)


# =============================================================================
# SUMMARY
# =============================================================================

def get_funding_summary(*, client: ZincClient | None = None) -> dict:
    """
    Balance vs. value of orders awaiting funds, for the admin dashboard.

    Falls back to the last observed balance when the live lookup fails.
    """
    pool = get_or_create_pool()
    db.session.commit()

    live = True
    try:
        balance = (client or ZincClient.from_app()).get_balance_cents()
    except BalanceUnavailableError as exc:
        current_app.logger.warning("Funding summary using stored balance: %s", exc)
        balance = pool.balance_cents
        live = False

    awaiting = (
        db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_amount_cents), 0))
        .filter(Order.funding_status == order_state_service.FUNDING_AWAITING)
        .one()
    )
    orders_waiting, pending_value = int(awaiting[0]), int(awaiting[1])

    shortfall = max(pending_value - balance, 0)
    recommended_transfer = required_cents(shortfall, 1.1) if shortfall > 0 else 0

    return {
        "pool": pool.to_dict(),
        "current_balance_cents": balance,
        "balance_is_live": live,
        "committed_cents": pool.committed_cents,
        "orders_waiting": orders_waiting,
        "pending_orders_value_cents": pending_value,
        "shortfall_cents": shortfall,
        "recommended_transfer_cents": recommended_transfer,
    }
