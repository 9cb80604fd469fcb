"""Initial fulfillment schema: orders, funding ledger, messaging

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. orders + order_notes (append-only audit trail)
2. funding_pools + funding_ledger_entries (ZMA reservation ledger)
3. customer_profiles + wishlist_items
4. email_queue, outbox_events, submission_rate_windows
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending_payment'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='unpaid'),
        sa.Column('funding_status', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=True),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('is_gift', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('gift_message', sa.Text(), nullable=True),
        sa.Column('is_scheduled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('zinc_request_id', sa.String(length=128), nullable=True),
        sa.Column('zinc_order_id', sa.String(length=128), nullable=True),
        sa.Column('zinc_status', sa.String(length=64), nullable=True),
        sa.Column('webhook_token', sa.String(length=128), nullable=True),
        sa.Column('tracking_data', sa.JSON(), nullable=True),
        sa.Column('funding_hold_reason', sa.Text(), nullable=True),
        sa.Column('expected_funding_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scheduled_delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attention_reason', sa.Text(), nullable=True),
        sa.Column('attention_details', sa.JSON(), nullable=True),
        sa.Column('vendor_error', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
        sa.UniqueConstraint('zinc_request_id'),
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_payment_status'), ['payment_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_funding_status'), ['funding_status'], unique=False)
        batch_op.create_index('ix_orders_status_expected_funding', ['status', 'expected_funding_date'], unique=False)

    op.create_table('order_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('note_type', sa.String(length=32), nullable=False),
        sa.Column('note_content', sa.Text(), nullable=False),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_notes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_notes_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_notes_note_type'), ['note_type'], unique=False)

    # ==========================================================================
    # 2. FUNDING POOL LEDGER
    # ==========================================================================
    op.create_table('funding_pools',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('committed_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('balance_checked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table('funding_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pool_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=True),
        sa.Column('entry_type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('committed_after_cents', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['pool_id'], ['funding_pools.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('funding_ledger_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_funding_ledger_entries_pool_id'), ['pool_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_funding_ledger_entries_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_funding_ledger_entries_entry_type'), ['entry_type'], unique=False)

    # ==========================================================================
    # 3. CUSTOMERS + WISHLISTS
    # ==========================================================================
    op.create_table('customer_profiles',
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
    )

    op.create_table('wishlist_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_user_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('wishlist_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_wishlist_items_owner_user_id'), ['owner_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wishlist_items_product_id'), ['product_id'], unique=False)
        batch_op.create_index('ix_wishlist_items_owner_product', ['owner_user_id', 'product_id'], unique=False)

    # ==========================================================================
    # 4. MESSAGING + RATE LIMITS
    # ==========================================================================
    op.create_table('email_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recipient', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('variables', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('email_queue', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_email_queue_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_email_queue_status'), ['status'], unique=False)

    op.create_table('outbox_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('outbox_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_outbox_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_outbox_events_status'), ['status'], unique=False)

    op.create_table('submission_rate_windows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('window_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'window_start', name='uq_rate_window_user_start'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('submission_rate_windows', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_submission_rate_windows_user_id'), ['user_id'], unique=False)


def downgrade():
    with op.batch_alter_table('submission_rate_windows', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_submission_rate_windows_user_id'))
    op.drop_table('submission_rate_windows')

    op.drop_table('outbox_events')
    op.drop_table('email_queue')

    with op.batch_alter_table('wishlist_items', schema=None) as batch_op:
        batch_op.drop_index('ix_wishlist_items_owner_product')
        batch_op.drop_index(batch_op.f('ix_wishlist_items_product_id'))
        batch_op.drop_index(batch_op.f('ix_wishlist_items_owner_user_id'))
    op.drop_table('wishlist_items')
    op.drop_table('customer_profiles')

    op.drop_table('funding_ledger_entries')
    op.drop_table('funding_pools')

    op.drop_table('order_notes')
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.drop_index('ix_orders_status_expected_funding')
    op.drop_table('orders')
