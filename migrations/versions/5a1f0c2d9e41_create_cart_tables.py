"""create cart, session and catalog tables

Revision ID: 5a1f0c2d9e41
Revises:
Create Date: 2026-10-17 09:30:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '5a1f0c2d9e41'
down_revision = None
branch_labels = None
depends_on = None


def _cart_columns():
    return [
        sa.Column('cart_id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('cart_key', sa.String(length=42), nullable=False, unique=True),
        sa.Column('cart_value', sa.Text(), nullable=False),
        sa.Column('cart_created', sa.BigInteger(), nullable=False),
        sa.Column('cart_expiry', sa.BigInteger(), nullable=False),
        sa.Column('cart_source', sa.String(length=200), nullable=False, server_default='cocart'),
        sa.Column('cart_hash', sa.String(length=200), nullable=False, server_default=''),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('username', sa.String(length=60), nullable=False, unique=True),
        sa.Column('email', sa.String(length=100), nullable=True, unique=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('display_name', sa.String(length=250), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='customer'),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'products',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('parent_id', sa.BigInteger(), sa.ForeignKey('products.id'), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='simple'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='publish'),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=200), nullable=True),
        sa.Column('sku', sa.String(length=100), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('tax_class', sa.String(length=50), nullable=False, server_default='standard'),
        sa.Column('manage_stock', sa.Boolean(), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('stock_status', sa.String(length=20), nullable=True),
        sa.Column('backorders', sa.String(length=10), nullable=True),
        sa.Column('sold_individually', sa.Boolean(), nullable=True),
        sa.Column('min_purchase', sa.Integer(), nullable=True),
        sa.Column('max_purchase', sa.Integer(), nullable=True),
        sa.Column('virtual', sa.Boolean(), nullable=True),
        sa.Column('weight', sa.String(length=20), nullable=True),
        sa.Column('length', sa.String(length=20), nullable=True),
        sa.Column('width', sa.String(length=20), nullable=True),
        sa.Column('height', sa.String(length=20), nullable=True),
        sa.Column('categories', sa.JSON(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('grouped_children', sa.JSON(), nullable=True),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_products_parent_id', 'products', ['parent_id'])
    op.create_table(
        'coupons',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('code', sa.String(length=100), nullable=False, unique=True),
        sa.Column('discount_type', sa.String(length=20), nullable=False, server_default='fixed_cart'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('minimum_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('maximum_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('product_ids', sa.JSON(), nullable=True),
        sa.Column('excluded_product_ids', sa.JSON(), nullable=True),
        sa.Column('product_categories', sa.JSON(), nullable=True),
        sa.Column('excluded_product_categories', sa.JSON(), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=True),
        sa.Column('date_expires', sa.DateTime(), nullable=True),
        sa.Column('individual_use', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table('carts', *_cart_columns())
    op.create_index('ix_carts_cart_expiry', 'carts', ['cart_expiry'])
    op.create_table('cart_sessions', *_cart_columns())
    op.create_index('ix_cart_sessions_cart_expiry', 'cart_sessions', ['cart_expiry'])
    op.create_table(
        'retired_cart_keys',
        sa.Column('cart_key', sa.String(length=42), primary_key=True),
        sa.Column('replaced_by', sa.String(length=42), nullable=False),
        sa.Column('retired_at', sa.BigInteger(), nullable=False),
        sa.Column('expires_at', sa.BigInteger(), nullable=False),
    )
    op.create_index('ix_retired_cart_keys_expires_at', 'retired_cart_keys', ['expires_at'])
    op.create_table(
        'stock_reservations',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('product_id', sa.BigInteger(), nullable=False),
        sa.Column('draft_order_id', sa.BigInteger(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.BigInteger(), nullable=False),
        sa.UniqueConstraint('product_id', 'draft_order_id', name='u_reservation_product_order'),
    )
    op.create_index('ix_stock_reservations_product_id', 'stock_reservations', ['product_id'])
    op.create_table(
        'woocommerce_sessions',
        sa.Column('session_id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('session_key', sa.String(length=42), nullable=False, unique=True),
        sa.Column('session_value', sa.Text(), nullable=False),
        sa.Column('session_expiry', sa.BigInteger(), nullable=False),
    )
    op.create_table(
        'cart_options',
        sa.Column('name', sa.String(length=191), primary_key=True),
        sa.Column('value', sa.Text(), nullable=True),
    )


def downgrade():
    op.drop_table('cart_options')
    op.drop_table('woocommerce_sessions')
    op.drop_index('ix_stock_reservations_product_id', table_name='stock_reservations')
    op.drop_table('stock_reservations')
    op.drop_index('ix_retired_cart_keys_expires_at', table_name='retired_cart_keys')
    op.drop_table('retired_cart_keys')
    op.drop_index('ix_cart_sessions_cart_expiry', table_name='cart_sessions')
    op.drop_table('cart_sessions')
    op.drop_index('ix_carts_cart_expiry', table_name='carts')
    op.drop_table('carts')
    op.drop_table('coupons')
    op.drop_index('ix_products_parent_id', table_name='products')
    op.drop_table('products')
    op.drop_table('users')
