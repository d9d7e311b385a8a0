"""Initial schema: inventory, sellers, suitcases, settlements

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration adds:
1. Users (identity only) and sellers
2. Inventory items and the inventory movement log
3. Suitcases, suitcase items and their sale annotations
4. Settlements, sold-item records and settlement slot locks
5. Partial unique index: one pendente settlement per suitcase
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    # ==========================================================================
    # 1. USERS / SELLERS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='operator'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True,
    )

    op.create_table('sellers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=4), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate <= 1)',
            name='ck_sellers_commission_rate_range',
        ),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 2. INVENTORY
    # ==========================================================================
    op.create_table('inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True,
    )

    op.create_table('inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('suitcase_id', sa.Integer(), nullable=True),
        sa.Column('suitcase_item_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_movements_inventory_id', 'inventory_movements', ['inventory_id'])
    op.create_index('ix_inventory_movements_movement_type', 'inventory_movements', ['movement_type'])
    op.create_index('ix_inventory_movements_suitcase_id', 'inventory_movements', ['suitcase_id'])
    op.create_index('ix_invmov_item_occurred', 'inventory_movements', ['inventory_id', 'occurred_at'])

    # ==========================================================================
    # 3. SUITCASES
    # ==========================================================================
    op.create_table('suitcases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='in_use'),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('neighborhood', sa.String(length=128), nullable=True),
        sa.Column('next_settlement_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_suitcases_seller_id', 'suitcases', ['seller_id'])
    op.create_index('ix_suitcases_status', 'suitcases', ['status'])
    op.create_index('ix_suitcases_city_neighborhood', 'suitcases', ['city', 'neighborhood'])

    op.create_table('suitcase_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('suitcase_id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='in_possession'),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('quantity >= 1', name='ck_suitcase_items_quantity_positive'),
        sa.ForeignKeyConstraint(['suitcase_id'], ['suitcases.id']),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_suitcase_items_suitcase_id', 'suitcase_items', ['suitcase_id'])
    op.create_index('ix_suitcase_items_inventory_id', 'suitcase_items', ['inventory_id'])
    op.create_index('ix_suitcase_items_status', 'suitcase_items', ['status'])
    op.create_index('ix_suitcase_items_suitcase_status', 'suitcase_items', ['suitcase_id', 'status'])

    op.create_table('suitcase_item_sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('suitcase_item_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['suitcase_item_id'], ['suitcase_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('suitcase_item_id'),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 4. SETTLEMENTS
    # ==========================================================================
    op.create_table('settlements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('suitcase_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=True),
        sa.Column('settlement_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('next_settlement_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_rate_applied', sa.Numeric(precision=5, scale=4), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pendente'),
        sa.Column('receipt_url', sa.String(length=512), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['suitcase_id'], ['suitcases.id']),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_settlements_suitcase_id', 'settlements', ['suitcase_id'])
    op.create_index('ix_settlements_seller_id', 'settlements', ['seller_id'])
    op.create_index('ix_settlements_settlement_date', 'settlements', ['settlement_date'])
    op.create_index('ix_settlements_status', 'settlements', ['status'])
    op.create_index('ix_settlements_seller_date', 'settlements', ['seller_id', 'settlement_date'])
    op.create_index(
        'uq_settlements_one_pending_per_suitcase',
        'settlements',
        ['suitcase_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pendente'"),
        postgresql_where=sa.text("status = 'pendente'"),
    )

    op.create_table('sold_item_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('settlement_id', sa.Integer(), nullable=True),
        sa.Column('suitcase_item_id', sa.Integer(), nullable=False),
        sa.Column('inventory_id', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('sale_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_settlement_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['settlement_id'], ['settlements.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['inventory_id'], ['inventory_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sold_items_settlement', 'sold_item_records', ['settlement_id'])
    op.create_index('ix_sold_items_inventory', 'sold_item_records', ['inventory_id'])
    op.create_index('ix_sold_item_records_suitcase_item_id', 'sold_item_records', ['suitcase_item_id'])

    op.create_table('settlement_locks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('suitcase_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('acquired_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['suitcase_id'], ['suitcases.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('suitcase_id'),
    )


def downgrade():
    op.drop_table('settlement_locks')
    op.drop_index('ix_sold_item_records_suitcase_item_id', table_name='sold_item_records')
    op.drop_index('ix_sold_items_inventory', table_name='sold_item_records')
    op.drop_index('ix_sold_items_settlement', table_name='sold_item_records')
    op.drop_table('sold_item_records')
    op.drop_index('uq_settlements_one_pending_per_suitcase', table_name='settlements')
    op.drop_index('ix_settlements_seller_date', table_name='settlements')
    op.drop_index('ix_settlements_status', table_name='settlements')
    op.drop_index('ix_settlements_settlement_date', table_name='settlements')
    op.drop_index('ix_settlements_seller_id', table_name='settlements')
    op.drop_index('ix_settlements_suitcase_id', table_name='settlements')
    op.drop_table('settlements')
    op.drop_table('suitcase_item_sales')
    op.drop_index('ix_suitcase_items_suitcase_status', table_name='suitcase_items')
    op.drop_index('ix_suitcase_items_status', table_name='suitcase_items')
    op.drop_index('ix_suitcase_items_inventory_id', table_name='suitcase_items')
    op.drop_index('ix_suitcase_items_suitcase_id', table_name='suitcase_items')
    op.drop_table('suitcase_items')
    op.drop_index('ix_suitcases_city_neighborhood', table_name='suitcases')
    op.drop_index('ix_suitcases_status', table_name='suitcases')
    op.drop_index('ix_suitcases_seller_id', table_name='suitcases')
    op.drop_table('suitcases')
    op.drop_index('ix_invmov_item_occurred', table_name='inventory_movements')
    op.drop_index('ix_inventory_movements_suitcase_id', table_name='inventory_movements')
    op.drop_index('ix_inventory_movements_movement_type', table_name='inventory_movements')
    op.drop_index('ix_inventory_movements_inventory_id', table_name='inventory_movements')
    op.drop_table('inventory_movements')
    op.drop_table('inventory_items')
    op.drop_table('sellers')
    op.drop_table('users')
