"""initial inventory schema

Revision ID: 20261018_initial_inventory
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the inventory tracking schema:
- locations: self-referencing hierarchy (parent_location_id)
- suppliers: supplier master with lead time for reorder points
- inventory_items: live stock counters with optimistic version column
- inventory_transactions: movements with lifecycle status
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial_inventory'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # locations: hierarchy nodes (depth and type rules enforced in the service)
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=True),
        sa.Column('location_type', sa.String(length=32), nullable=False),
        sa.Column('parent_location_id', sa.Integer(), nullable=True),
        sa.Column('max_capacity', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('updated_by', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['parent_location_id'], ['locations.id'], name='fk_locations_parent_location_id_locations'),
        sa.PrimaryKeyConstraint('id', name='pk_locations'),
        sa.UniqueConstraint('code', name='uq_locations_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_parent_location_id', 'locations', ['parent_location_id'])
    op.create_index('ix_locations_parent_code', 'locations', ['parent_location_id', 'code'])

    # ============================================================================
    # suppliers
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('company_name', sa.String(length=200), nullable=False),
        sa.Column('contact_email', sa.String(length=100), nullable=True),
        sa.Column('lead_time_days', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_suppliers'),
        sa.UniqueConstraint('code', name='uq_suppliers_code'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # inventory_items: live counters; version_id backs the optimistic lock
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('part_number', sa.String(length=50), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=True),
        sa.Column('unit_of_measure', sa.String(length=20), nullable=False, server_default='Each'),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('minimum_stock', sa.Integer(), nullable=False, server_default='0'),
        # 0 = no maximum
        sa.Column('maximum_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('standard_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('last_movement', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('updated_by', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], name='fk_inventory_items_location_id_locations'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], name='fk_inventory_items_supplier_id_suppliers'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_items'),
        sa.UniqueConstraint('part_number', name='uq_inventory_items_part_number'),
        sa.UniqueConstraint('barcode', name='uq_inventory_items_barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_location_id', 'inventory_items', ['location_id'])
    op.create_index('ix_inventory_items_supplier_id', 'inventory_items', ['supplier_id'])
    op.create_index('ix_inventory_items_location_active', 'inventory_items', ['location_id', 'is_active'])

    # ============================================================================
    # inventory_transactions: PENDING -> APPROVED -> PROCESSING -> COMPLETED
    # ============================================================================
    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        # {PREFIX}-{yyyyMMdd}-{seq:04d}; uniqueness serializes number allocation
        sa.Column('transaction_number', sa.String(length=32), nullable=False),
        sa.Column('transaction_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('source_location_id', sa.Integer(), nullable=True),
        sa.Column('destination_location_id', sa.Integer(), nullable=True),
        # Signed for ADJUSTMENT, positive otherwise
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('reference_number', sa.String(length=50), nullable=True),
        sa.Column('reference_type', sa.String(length=50), nullable=True),
        sa.Column('adjustment_reason', sa.String(length=200), nullable=True),
        sa.Column('initiated_by', sa.String(length=100), nullable=True),
        sa.Column('initiated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.String(length=100), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], name='fk_inventory_transactions_inventory_item_id_inventory_items'),
        sa.ForeignKeyConstraint(['source_location_id'], ['locations.id'], name='fk_inventory_transactions_source_location_id_locations'),
        sa.ForeignKeyConstraint(['destination_location_id'], ['locations.id'], name='fk_inventory_transactions_destination_location_id_locations'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_transactions'),
        sa.UniqueConstraint('transaction_number', name='uq_inventory_transactions_transaction_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_transactions_transaction_type',
                    'inventory_transactions', ['transaction_type'])
    op.create_index('ix_inventory_transactions_status',
                    'inventory_transactions', ['status'])
    op.create_index('ix_inventory_transactions_inventory_item_id',
                    'inventory_transactions', ['inventory_item_id'])
    op.create_index('ix_inventory_transactions_source_location_id',
                    'inventory_transactions', ['source_location_id'])
    op.create_index('ix_inventory_transactions_destination_location_id',
                    'inventory_transactions', ['destination_location_id'])
    op.create_index('ix_inventory_transactions_processed_at',
                    'inventory_transactions', ['processed_at'])
    op.create_index('ix_inventory_transactions_item_status',
                    'inventory_transactions', ['inventory_item_id', 'status'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('inventory_transactions')
    op.drop_table('inventory_items')
    op.drop_table('suppliers')
    op.drop_table('locations')
