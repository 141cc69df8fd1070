"""initial storefront schema

Revision ID: 5f2c8e1a9b47
Revises:
Create Date: 2026-10-19 09:12:04.118230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5f2c8e1a9b47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('ADMIN', 'CUSTOMER', name='userrole')
zone_type = sa.Enum('WEST_MALAYSIA', 'EAST_MALAYSIA', name='zonetype')
order_status = sa.Enum('PENDING', 'PROCESSING', 'SHIPPED', 'DELIVERED', 'CANCELLED', name='orderstatus')
payment_status = sa.Enum('PENDING', 'PAID', 'FAILED', 'REFUNDED', name='paymentstatus')
payment_method = sa.Enum('CREDIT_CARD', 'FPX', 'E_WALLET', 'BANK_TRANSFER', 'CASH_ON_DELIVERY', name='paymentmethod')
payment_gateway = sa.Enum('STRIPE', 'CURLEC', name='paymentgatewayname')
return_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='returnstatus')
item_condition = sa.Enum('NEW', 'LIKE_NEW', 'USED', 'DAMAGED', name='itemcondition')
refund_method = sa.Enum('CREDIT_CARD', 'BANK_TRANSFER', 'STORE_CREDIT', 'E_WALLET', name='refundmethod')
refund_status = sa.Enum('PENDING', 'COMPLETED', 'CANCELLED', name='refundstatus')
inventory_tx_type = sa.Enum('PURCHASE', 'SALE', 'RETURN', 'ADJUSTMENT', 'RESERVED', 'RELEASED', name='inventorytransactiontype')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(120)),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'addresses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('full_name', sa.String(120)),
        sa.Column('street', sa.String(255), nullable=False),
        sa.Column('city', sa.String(120), nullable=False),
        sa.Column('state', sa.String(120), nullable=False),
        sa.Column('postal_code', sa.String(20), nullable=False),
        sa.Column('country', sa.String(2), nullable=False),
        sa.Column('phone', sa.String(40)),
        sa.Column('is_default', sa.Boolean()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_addresses_user_id', 'addresses', ['user_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('reserved_stock', sa.Integer(), nullable=False),
        sa.Column('inventory_tracking', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('reserved_stock >= 0', name='ck_products_reserved_non_negative'),
    )

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('sku', sa.String(120), nullable=False, unique=True),
        sa.Column('name', sa.String(255)),
        sa.Column('price', sa.Numeric(12, 2)),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('reserved_stock', sa.Integer(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_variants_stock_non_negative'),
        sa.CheckConstraint('reserved_stock >= 0', name='ck_variants_reserved_non_negative'),
    )

    op.create_table(
        'shipping_zones',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('type', zone_type, nullable=False),
        sa.Column('is_active', sa.Boolean()),
    )
    op.create_index('ix_shipping_zones_type', 'shipping_zones', ['type'])

    op.create_table(
        'shipping_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('zone_id', sa.Integer(), sa.ForeignKey('shipping_zones.id'), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('min_order_value', sa.Numeric(12, 2)),
        sa.Column('max_order_value', sa.Numeric(12, 2)),
        sa.Column('is_active', sa.Boolean()),
    )

    op.create_table(
        'carts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )

    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cart_id', sa.Integer(), sa.ForeignKey('carts.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id')),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('shipping_address_id', sa.Integer(), sa.ForeignKey('addresses.id'), nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('payment_method', payment_method),
        sa.Column('payment_gateway', payment_gateway),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('gateway_session_id', sa.String(255)),
        sa.Column('gateway_payment_id', sa.String(255)),
        sa.Column('delivered_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_gateway_session_id', 'orders', ['gateway_session_id'], unique=True)
    op.create_index('ix_orders_gateway_payment_id', 'orders', ['gateway_payment_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id')),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
    )

    op.create_table(
        'returns',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', return_status, nullable=False),
        sa.Column('reason', sa.String(255), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('decided_by', sa.Integer(), sa.ForeignKey('users.id')),
        sa.Column('decided_at', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_returns_order_id', 'returns', ['order_id'])
    op.create_index('ix_returns_status', 'returns', ['status'])

    op.create_table(
        'return_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('return_id', sa.Integer(), sa.ForeignKey('returns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', sa.Integer(), sa.ForeignKey('order_items.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id')),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(255), nullable=False),
        sa.Column('condition', item_condition, nullable=False),
    )

    op.create_table(
        'refunds',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('return_id', sa.Integer(), sa.ForeignKey('returns.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', refund_method),
        sa.Column('status', refund_status, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id')),
        sa.Column('type', inventory_tx_type, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(255)),
        sa.Column('reference_type', sa.String(50)),
        sa.Column('reference_id', sa.Integer()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_inventory_tx_product', 'inventory_transactions', ['product_id', 'variant_id'])
    op.create_index('idx_inventory_tx_reference', 'inventory_transactions', ['reference_type', 'reference_id'])


def downgrade():
    for table in (
        'inventory_transactions', 'refunds', 'return_items', 'returns',
        'order_items', 'orders', 'cart_items', 'carts', 'shipping_rates',
        'shipping_zones', 'product_variants', 'products', 'addresses', 'users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (
        inventory_tx_type, refund_status, refund_method, item_condition,
        return_status, payment_gateway, payment_method, payment_status,
        order_status, zone_type, user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
