"""
Alembic migration: Create measurement order tables.

Creates customer_accounts, measurement_templates, shipping_settings and
measurement_orders with the enum types, check constraints and indexes the
ORM models declare.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

ACCOUNT_ROLES = ('customer', 'staff', 'admin')
ORDER_STATUSES = (
    'order_received',
    'design_review',
    'fabric_selection',
    'pattern_making',
    'cutting',
    'sewing',
    'quality_check',
    'packed',
    'shipped',
    'in_transit',
    'out_for_delivery',
    'delivered',
    'cancelled',
)
PAYMENT_STATUSES = ('pending', 'paid', 'failed', 'cancelled')


def _timestamps() -> list:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
    ]


def upgrade() -> None:
    """
    Create the measurement order schema.
    """
    op.create_table(
        'customer_accounts',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('first_name', sa.String(50), nullable=True),
        sa.Column('last_name', sa.String(50), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('street', sa.String(500), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('zip_code', sa.String(20), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column(
            'role',
            sa.Enum(*ACCOUNT_ROLES, name='account_role'),
            nullable=False,
            server_default='customer',
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        comment='Customer and staff accounts',
    )
    op.create_index('ix_customer_accounts_email', 'customer_accounts', ['email'], unique=True)

    op.create_table(
        'measurement_templates',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('fields', JSON_TYPE, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        comment='Measurement template catalog',
    )

    op.create_table(
        'shipping_settings',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('location_fees', JSON_TYPE, nullable=False),
        sa.Column(
            'free_shipping_threshold',
            sa.Numeric(12, 2),
            nullable=False,
            server_default='0',
        ),
        *_timestamps(),
        comment='Shipping fee configuration',
    )

    op.create_table(
        'measurement_orders',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('order_number', sa.String(32), nullable=False),
        sa.Column(
            'user_id',
            sa.Uuid(as_uuid=True),
            sa.ForeignKey('customer_accounts.id'),
            nullable=True,
        ),
        sa.Column('is_guest', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('guest_email', sa.String(255), nullable=True),
        sa.Column('name', sa.String(101), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=False),
        sa.Column('address', sa.String(500), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=False),
        sa.Column('zip_code', sa.String(20), nullable=False),
        sa.Column('country', sa.String(100), nullable=False),
        sa.Column('templates', JSON_TYPE, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('preferred_style', sa.String(255), nullable=True),
        sa.Column(
            'status',
            sa.Enum(*ORDER_STATUSES, name='measurement_order_status'),
            nullable=False,
            server_default='order_received',
        ),
        sa.Column(
            'payment_status',
            sa.Enum(*PAYMENT_STATUSES, name='measurement_payment_status'),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('payment_method', sa.String(50), nullable=False),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('transaction_reference', sa.String(100), nullable=True),
        sa.Column('gateway_payment_reference', sa.String(100), nullable=True),
        sa.Column('payment_url', sa.String(1000), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('price_set_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('price_set_by', sa.String(255), nullable=True),
        sa.Column('shipping_location', sa.String(100), nullable=False),
        sa.Column('delivery_fee', sa.Numeric(12, 2), nullable=True),
        sa.Column('tax', sa.Numeric(12, 2), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('is_replaced', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'replaced_by_order_id',
            sa.Uuid(as_uuid=True),
            sa.ForeignKey('measurement_orders.id'),
            nullable=True,
        ),
        sa.Column(
            'original_order_id',
            sa.Uuid(as_uuid=True),
            sa.ForeignKey('measurement_orders.id'),
            nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "(user_id IS NOT NULL AND is_guest = false AND guest_email IS NULL) "
            "OR (user_id IS NULL AND is_guest = true AND guest_email IS NOT NULL)",
            name='ck_measurement_orders_single_origin',
        ),
        sa.CheckConstraint(
            'price IS NULL OR price >= 0',
            name='ck_measurement_orders_price_non_negative',
        ),
        sa.CheckConstraint(
            'delivery_fee IS NULL OR delivery_fee >= 0',
            name='ck_measurement_orders_delivery_fee_non_negative',
        ),
        sa.CheckConstraint(
            'tax IS NULL OR tax >= 0',
            name='ck_measurement_orders_tax_non_negative',
        ),
        sa.CheckConstraint(
            "NOT (is_replaced = true AND payment_status = 'paid')",
            name='ck_measurement_orders_replaced_never_paid',
        ),
        comment='Made-to-measure orders and their replacement chain',
    )

    op.create_index(
        'ix_measurement_orders_order_number',
        'measurement_orders',
        ['order_number'],
        unique=True,
    )
    op.create_index(
        'uq_measurement_orders_transaction_reference',
        'measurement_orders',
        ['transaction_reference'],
        unique=True,
        postgresql_where=sa.text('transaction_reference IS NOT NULL'),
        sqlite_where=sa.text('transaction_reference IS NOT NULL'),
    )
    op.create_index('ix_measurement_orders_user_id', 'measurement_orders', ['user_id'])
    op.create_index('ix_measurement_orders_status', 'measurement_orders', ['status'])
    op.create_index('ix_measurement_orders_created_at', 'measurement_orders', ['created_at'])


def downgrade() -> None:
    """
    Drop the measurement order schema.
    """
    op.drop_index('ix_measurement_orders_created_at', table_name='measurement_orders')
    op.drop_index('ix_measurement_orders_status', table_name='measurement_orders')
    op.drop_index('ix_measurement_orders_user_id', table_name='measurement_orders')
    op.drop_index('uq_measurement_orders_transaction_reference', table_name='measurement_orders')
    op.drop_index('ix_measurement_orders_order_number', table_name='measurement_orders')
    op.drop_table('measurement_orders')
    op.drop_table('shipping_settings')
    op.drop_table('measurement_templates')
    op.drop_index('ix_customer_accounts_email', table_name='customer_accounts')
    op.drop_table('customer_accounts')

    bind = op.get_bind()
    sa.Enum(name='measurement_payment_status').drop(bind, checkfirst=True)
    sa.Enum(name='measurement_order_status').drop(bind, checkfirst=True)
    sa.Enum(name='account_role').drop(bind, checkfirst=True)
