"""initial_settlement_schema

Revision ID: 5b1e0c7d2a90
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5b1e0c7d2a90'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'user_role_enum': ('user', 'admin'),
    'delivery_method_enum': ('pickup', 'delivery'),
    'order_status_enum': ('processing', 'dispatched', 'delivered'),
    'checkout_status_enum': ('open', 'completed', 'abandoned'),
    'refund_request_status_enum': ('pending', 'approved', 'rejected'),
    'wallet_transaction_type_enum': ('topup', 'purchase', 'refund'),
    'topup_status_enum': ('pending', 'completed'),
    'topup_provider_enum': ('paypal', 'nets'),
    'payment_provider_enum': ('wallet', 'paypal', 'stripe', 'stripe_paynow', 'nets'),
    'payment_status_enum': ('paid', 'refunded'),
}

DELIVERY_ADDRESS_RULE = (
    "(delivery_method = 'delivery' AND delivery_address IS NOT NULL) "
    "OR (delivery_method = 'pickup')"
)


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    """Upgrade schema - users, catalog, checkout, orders, wallet ledger, payments."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('contact', sa.String(length=32), nullable=True),
        sa.Column('role', _enum('user_role_enum'), nullable=False),
        sa.Column('free_delivery', sa.Boolean(), nullable=False),
        sa.Column('wallet_balance', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('wallet_balance >= 0', name='ck_users_wallet_balance_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('offer_message', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sa.CheckConstraint(
            'discount_percentage >= 0 AND discount_percentage <= 100',
            name='ck_products_discount_range',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_category', 'products', ['category'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('delivery_method', _enum('delivery_method_enum'), nullable=False),
        sa.Column('delivery_address', sa.String(length=255), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', _enum('order_status_enum'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(DELIVERY_ADDRESS_RULE, name='ck_orders_delivery_address'),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price_non_negative'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'pending_checkouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('lines', postgresql.JSONB(), nullable=False),
        sa.Column('delivery_method', _enum('delivery_method_enum'), nullable=False),
        sa.Column('delivery_address', sa.String(length=255), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('expected_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_provider', sa.String(length=32), nullable=True),
        sa.Column('provider_ref', sa.String(length=255), nullable=True),
        sa.Column('provider_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', _enum('checkout_status_enum'), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(DELIVERY_ADDRESS_RULE, name='ck_checkout_delivery_address'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pending_checkouts_user_id', 'pending_checkouts', ['user_id'])
    op.create_index('ix_pending_checkouts_provider_ref', 'pending_checkouts', ['provider_ref'])

    op.create_table(
        'refund_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('evidence_path', sa.String(length=500), nullable=True),
        sa.Column('status', _enum('refund_request_status_enum'), nullable=False),
        sa.Column('resolved_by', sa.Integer(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_refund_requests_order_id', 'refund_requests', ['order_id'])
    op.create_index('ix_refund_requests_user_id', 'refund_requests', ['user_id'])

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', _enum('wallet_transaction_type_enum'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(12, 2), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount <> 0', name='ck_wallet_transactions_amount_non_zero'),
        sa.CheckConstraint('balance_after >= 0', name='ck_wallet_transactions_balance_non_negative'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference'),
    )
    op.create_index('ix_wallet_transactions_user_id', 'wallet_transactions', ['user_id'])
    op.create_index(
        'ix_wallet_transactions_user_created', 'wallet_transactions', ['user_id', 'created_at']
    )

    op.create_table(
        'wallet_topups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('provider', _enum('topup_provider_enum'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', _enum('topup_status_enum'), nullable=False),
        sa.Column('provider_ref', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_wallet_topups_amount_positive'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wallet_topups_user_id', 'wallet_topups', ['user_id'])
    op.create_index('ix_wallet_topups_provider_ref', 'wallet_topups', ['provider_ref'], unique=True)

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('provider', _enum('payment_provider_enum'), nullable=False),
        sa.Column('status', _enum('payment_status_enum'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('provider_ref', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_payments_amount_non_negative'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )
    op.create_index('ix_payments_provider_ref', 'payments', ['provider_ref'])
    op.create_index(
        'uq_payments_provider_ref',
        'payments',
        ['provider', 'provider_ref'],
        unique=True,
        postgresql_where=sa.text("provider <> 'wallet'"),
    )


def downgrade() -> None:
    """Downgrade schema - drop everything created in upgrade()."""
    op.drop_index('uq_payments_provider_ref', table_name='payments')
    op.drop_index('ix_payments_provider_ref', table_name='payments')
    op.drop_table('payments')
    op.drop_index('ix_wallet_topups_provider_ref', table_name='wallet_topups')
    op.drop_index('ix_wallet_topups_user_id', table_name='wallet_topups')
    op.drop_table('wallet_topups')
    op.drop_index('ix_wallet_transactions_user_created', table_name='wallet_transactions')
    op.drop_index('ix_wallet_transactions_user_id', table_name='wallet_transactions')
    op.drop_table('wallet_transactions')
    op.drop_index('ix_refund_requests_user_id', table_name='refund_requests')
    op.drop_index('ix_refund_requests_order_id', table_name='refund_requests')
    op.drop_table('refund_requests')
    op.drop_index('ix_pending_checkouts_provider_ref', table_name='pending_checkouts')
    op.drop_index('ix_pending_checkouts_user_id', table_name='pending_checkouts')
    op.drop_table('pending_checkouts')
    op.drop_index('ix_order_items_product_id', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_products_category', table_name='products')
    op.drop_table('products')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
