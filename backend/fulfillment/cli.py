# Overview: Flask CLI command groups for order processing, funding and the outbox worker.

# backend/fulfillment/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Orders:
# - python -m flask orders process <order-id> [--bypass-funding]
#   Run the fulfillment pipeline for one order (same path as the payment webhook).
# - python -m flask orders show <order-id>
#   Print an order with its audit notes.
# - python -m flask orders attention [--limit 50]
#   List orders parked in requires_attention with their missing/invalid fields.
#
# Funding pool:
# - python -m flask funding init-pool
#   Create the configured pool row if missing (idempotent).
# - python -m flask funding set-balance 1250.00
#   Record a settled balance (dollars) without calling the vendor.
# - python -m flask funding summary
#   Balance, orders awaiting funds, shortfall and recommended transfer.
# - python -m flask funding redrive [--limit 50]
#   Re-run deferred orders whose expected funding date has passed (cron target).
#
# Outbox:
# - python -m flask outbox process [--limit 50]
#   Drain pending background events (wishlist purchase checks).

import json
from decimal import Decimal, InvalidOperation

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import OrderNotFoundError
from .services import funding_service, notification_service, order_state_service, redrive_service
from .services.order_processing_service import process_order, TRIGGER_ADMIN


def _cents(value: int) -> str:
    return f"${value / 100:,.2f}"


@click.group('orders')
def orders_group():
    """Order pipeline commands."""


@orders_group.command('process')
@click.argument('order_id')
@click.option('--bypass-funding', is_flag=True, help='Skip the funding gate (trusted operator only)')
@with_appcontext
def process_order_cmd(order_id, bypass_funding):
    """Run the fulfillment pipeline for ORDER_ID."""
    result = process_order(order_id, trigger_source=TRIGGER_ADMIN, bypass_funding_check=bypass_funding)
    label = "PASS" if result.success else "FAIL"
    click.echo(f"{label} HTTP {result.http_status}")
    click.echo(json.dumps(result.body, indent=2, default=str))


@orders_group.command('show')
@click.argument('order_id')
@with_appcontext
def show_order_cmd(order_id):
    """Print an order and its notes."""
    try:
        order = order_state_service.get_order(order_id)
    except OrderNotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(json.dumps(order.to_dict(), indent=2, default=str))
    click.echo("\nNotes:")
    for note in order_state_service.get_order_notes(order.id):
        visibility = "internal" if note.is_internal else "customer"
        click.echo(f"  [{note.created_at}] {note.note_type} ({visibility}): {note.note_content}")


@orders_group.command('attention')
@click.option('--limit', default=50, type=int, help='Max orders to list')
@with_appcontext
def attention_cmd(limit):
    """List orders requiring attention."""
    orders = order_state_service.list_orders_by_status(
        [order_state_service.STATUS_REQUIRES_ATTENTION], limit=limit
    )
    if not orders:
        click.echo("No orders require attention.")
        return

    click.echo(f"{'Order':<38} {'Number':<20} Reason")
    click.echo("-" * 100)
    for o in orders:
        click.echo(f"{o.id:<38} {o.order_number:<20} {o.attention_reason or o.error_message or ''}")
        details = o.attention_details or {}
        if details.get("missing_fields"):
            click.echo(f"{'':<59} missing: {', '.join(details['missing_fields'])}")
        if details.get("invalid_identifiers"):
            click.echo(f"{'':<59} invalid: {', '.join(details['invalid_identifiers'])}")


@click.group('funding')
def funding_group():
    """Funding pool (ZMA) commands."""


@funding_group.command('init-pool')
@with_appcontext
def init_pool_cmd():
    """Create the configured funding pool if missing."""
    pool = funding_service.get_or_create_pool()
    db.session.commit()
    click.echo(f"PASS Funding pool '{pool.name}' (ID: {pool.id}) balance {_cents(pool.balance_cents)}")


@funding_group.command('set-balance')
@click.argument('dollars')
@with_appcontext
def set_balance_cmd(dollars):
    """Record a settled pool balance in DOLLARS."""
    try:
        cents = int((Decimal(dollars) * 100).quantize(Decimal("1")))
    except InvalidOperation:
        raise click.BadParameter(f"not a number: {dollars}")

    pool = funding_service.set_pool_balance(cents)
    click.echo(f"PASS Pool '{pool.name}' balance set to {_cents(pool.balance_cents)}")


@funding_group.command('summary')
@with_appcontext
def funding_summary_cmd():
    """Show balance vs. orders awaiting funds."""
    summary = funding_service.get_funding_summary()
    source = "live" if summary["balance_is_live"] else "stored"
    click.echo(f"Balance ({source}):       {_cents(summary['current_balance_cents'])}")
    click.echo(f"Committed:            {_cents(summary['committed_cents'])}")
    click.echo(f"Orders waiting:       {summary['orders_waiting']}")
    click.echo(f"Pending value:        {_cents(summary['pending_orders_value_cents'])}")
    click.echo(f"Shortfall:            {_cents(summary['shortfall_cents'])}")
    click.echo(f"Recommended transfer: {_cents(summary['recommended_transfer_cents'])}")


@funding_group.command('redrive')
@click.option('--limit', default=50, type=int, help='Max orders to re-drive')
@with_appcontext
def redrive_cmd(limit):
    """Re-run deferred orders whose expected funding date has passed."""
    results = redrive_service.redrive_due_orders(limit=limit)
    if not results:
        click.echo("No deferred orders are due.")
        return
    for entry in results:
        body = entry["result"]
        status = body.get("status") or body.get("error")
        click.echo(f"{entry['orderId']}  HTTP {entry['httpStatus']}  {status}")
    click.echo(f"\nDONE Re-drove {len(results)} order(s)")


@click.group('outbox')
def outbox_group():
    """Background outbox worker."""


@outbox_group.command('process')
@click.option('--limit', default=50, type=int, help='Max events to process')
@with_appcontext
def outbox_process_cmd(limit):
    """Drain pending outbox events."""
    summary = notification_service.process_outbox_events(limit=limit)
    click.echo(
        f"DONE processed={summary['processed']} retrying={summary['retrying']} failed={summary['failed']}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orders_group)
    app.cli.add_command(funding_group)
    app.cli.add_command(outbox_group)
