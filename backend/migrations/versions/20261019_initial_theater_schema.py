"""Initial theater schema: tenants, products, array documents, stock ledger

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. theaters (tenant root)
2. products (current_stock is the ledger-derived cache)
3. roles, theaterusers, pageaccesses, qrcodenames (one array document per theater)
4. monthlystocks (per product per month ledger)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


ARRAY_TABLES = ('roles', 'theaterusers', 'pageaccesses', 'qrcodenames')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. THEATERS
    # ==========================================================================
    op.create_table('theaters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_theaters'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('theaters', schema=None) as batch_op:
        batch_op.create_index('ix_theaters_code', ['code'], unique=True)
        batch_op.create_index('ix_theaters_is_active', ['is_active'], unique=False)

    # ==========================================================================
    # 2. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], name='fk_products_theater_id_theaters'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('theater_id', 'sku', name='uq_products_theater_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_theater_id', ['theater_id'], unique=False)
        batch_op.create_index('ix_products_theater_active', ['theater_id', 'is_active'], unique=False)

    # ==========================================================================
    # 3. THEATER ARRAY DOCUMENTS
    # ==========================================================================
    for table in ARRAY_TABLES:
        op.create_table(table,
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('theater_id', sa.Integer(), nullable=False),
            sa.Column('items', sa.JSON(), nullable=False),
            sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
            *_timestamps(),
            sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], name=f'fk_{table}_theater_id_theaters'),
            sa.PrimaryKeyConstraint('id', name=f'pk_{table}'),
            sa.UniqueConstraint('theater_id', name=f'uq_{table}_theater_id'),
        )

    # ==========================================================================
    # 4. MONTHLY STOCK LEDGER
    # ==========================================================================
    op.create_table('monthlystocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('theater_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('carry_forward', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_details', sa.JSON(), nullable=False),
        sa.Column('closing_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='ck_monthlystocks_month_range'),
        sa.ForeignKeyConstraint(['theater_id'], ['theaters.id'], name='fk_monthlystocks_theater_id_theaters'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_monthlystocks_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_monthlystocks'),
        sa.UniqueConstraint('product_id', 'year', 'month', name='uq_monthlystocks_product_period'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('monthlystocks', schema=None) as batch_op:
        batch_op.create_index('ix_monthlystocks_theater_id', ['theater_id'], unique=False)
        batch_op.create_index('ix_monthlystocks_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_monthlystocks_theater_period', ['theater_id', 'year', 'month'], unique=False)


def downgrade():
    with op.batch_alter_table('monthlystocks', schema=None) as batch_op:
        batch_op.drop_index('ix_monthlystocks_theater_period')
        batch_op.drop_index('ix_monthlystocks_product_id')
        batch_op.drop_index('ix_monthlystocks_theater_id')
    op.drop_table('monthlystocks')

    for table in reversed(ARRAY_TABLES):
        op.drop_table(table)

    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_index('ix_products_theater_active')
        batch_op.drop_index('ix_products_theater_id')
    op.drop_table('products')

    with op.batch_alter_table('theaters', schema=None) as batch_op:
        batch_op.drop_index('ix_theaters_is_active')
        batch_op.drop_index('ix_theaters_code')
    op.drop_table('theaters')
