"""pos sync: tenants, connections, staging tables, unified ledger, daily aggregates, rules

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = '0a1b2c3d4e5f'
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name: str = 'created_at') -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()'))


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        _created_at(),
    )

    op.create_table(
        'pos_connections',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('pos_system', sa.String(50), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=False),
        sa.Column('client_id', sa.String(255), nullable=True),
        sa.Column('encrypted_client_secret', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        # Advanced only after a scheduled run fully commits
        sa.Column('last_sync_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('last_error_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_pos_connections_tenant_id', 'pos_connections', ['tenant_id'], unique=True)

    # ── Staging tables (written by the integration layer) ──
    op.create_table(
        'pos_orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('external_order_id', sa.String(255), nullable=False),
        sa.Column('order_date', sa.Date(), nullable=False),
        sa.Column('order_time', sa.Time(), nullable=True),
        sa.Column('tax_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('raw_json', JSONB(), nullable=True),
        _created_at('synced_at'),
        sa.UniqueConstraint('tenant_id', 'external_order_id'),
    )
    op.create_index('ix_pos_orders_tenant_date', 'pos_orders', ['tenant_id', 'order_date'])

    op.create_table(
        'pos_order_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('external_item_id', sa.String(255), nullable=False),
        sa.Column('external_order_id', sa.String(255), nullable=False),
        sa.Column('item_name', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False, server_default='1'),
        # Line totals: quantity already applied
        sa.Column('line_total', sa.Numeric(14, 2), nullable=True),
        sa.Column('discount_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('is_voided', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('menu_category', sa.String(255), nullable=True),
        sa.Column('raw_json', JSONB(), nullable=True),
        _created_at('synced_at'),
        sa.UniqueConstraint('tenant_id', 'external_item_id', 'external_order_id'),
    )
    op.create_index('ix_pos_order_items_tenant_order', 'pos_order_items', ['tenant_id', 'external_order_id'])

    op.create_table(
        'pos_payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('external_payment_id', sa.String(255), nullable=False),
        sa.Column('external_order_id', sa.String(255), nullable=False),
        sa.Column('payment_type', sa.String(50), nullable=True),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('tip_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('refund_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('raw_json', JSONB(), nullable=True),
        _created_at('synced_at'),
        sa.UniqueConstraint('tenant_id', 'external_payment_id', 'external_order_id'),
    )
    op.create_index('ix_pos_payments_tenant_date', 'pos_payments', ['tenant_id', 'payment_date'])

    # ── Categories & rules ──
    op.create_table(
        'categories',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('account_code', sa.String(20), nullable=True),
        _created_at(),
    )
    op.create_index('ix_categories_tenant_id', 'categories', ['tenant_id'])

    op.create_table(
        'categorization_rules',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('applies_to', sa.String(20), nullable=False, server_default='pos_sales'),
        sa.Column('item_name_pattern', sa.String(500), nullable=True),
        sa.Column('match_type', sa.String(20), nullable=False, server_default='contains'),
        sa.Column('pos_category', sa.String(255), nullable=True),
        sa.Column('amount_min', sa.Numeric(14, 2), nullable=True),
        sa.Column('amount_max', sa.Numeric(14, 2), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auto_apply', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('apply_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_applied_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_categorization_rules_tenant_priority', 'categorization_rules', ['tenant_id', 'priority'])

    # ── Unified ledger ──
    op.create_table(
        'unified_sales',
        # Deterministic uuid5 of (tenant, pos, order, item); no default on purpose
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('pos_system', sa.String(50), nullable=False),
        sa.Column('external_order_id', sa.String(255), nullable=False),
        sa.Column('external_item_id', sa.String(255), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('sale_time', sa.Time(), nullable=True),
        sa.Column('item_name', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 4), nullable=False),
        sa.Column('total_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('pos_category', sa.String(255), nullable=True),
        # revenue | discount | void | tax | tip | refund
        sa.Column('adjustment_type', sa.String(20), nullable=False),
        sa.Column('suggested_category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id'), nullable=True),
        sa.Column('category_id', UUID(as_uuid=True), sa.ForeignKey('categories.id'), nullable=True),
        sa.Column('is_categorized', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_split', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column(
            'parent_sale_id',
            UUID(as_uuid=True),
            sa.ForeignKey('unified_sales.id', ondelete='CASCADE'),
            nullable=True,
        ),
        sa.Column('raw_data', JSONB(), nullable=True),
    )
    op.create_index('ix_unified_sales_tenant_pos_date', 'unified_sales', ['tenant_id', 'pos_system', 'sale_date'])
    op.create_index('ix_unified_sales_tenant_date', 'unified_sales', ['tenant_id', 'sale_date'])

    op.create_table(
        'daily_sales',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('tenant_id', UUID(as_uuid=True), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('gross_sales', sa.Numeric(14, 2), nullable=False, server_default='0'),
        # Signed offsets, always <= 0
        sa.Column('discounts', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('voids', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('refunds', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('net_sales', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('tax', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('tips', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        _created_at('updated_at'),
        sa.UniqueConstraint('tenant_id', 'sale_date'),
    )
    op.create_index('ix_daily_sales_tenant_id', 'daily_sales', ['tenant_id'])


def downgrade() -> None:
    op.drop_table('daily_sales')
    op.drop_table('unified_sales')
    op.drop_table('categorization_rules')
    op.drop_table('categories')
    op.drop_table('pos_payments')
    op.drop_table('pos_order_items')
    op.drop_table('pos_orders')
    op.drop_table('pos_connections')
    op.drop_table('tenants')
