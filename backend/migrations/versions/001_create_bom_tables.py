"""Create BOM tables

Revision ID: 001_create_bom_tables
Revises:
Create Date: 2026-03-02

Units, inventory items and users are collaborator tables owned by other
modules; they are created here so the BOM schema can stand alone.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_create_bom_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create units, inventory_items, users, BOM and audit tables."""

    op.create_table(
        'units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('abbreviation', sa.String(10), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('abbreviation'),
    )
    op.create_index('ix_units_id', 'units', ['id'])

    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 4), nullable=False, server_default='0'),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_items_id', 'inventory_items', ['id'])
    op.create_index('ix_inventory_items_sku', 'inventory_items', ['sku'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'bill_of_materials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('version', sa.String(20), nullable=False, server_default='1.0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('finished_product_id', sa.Integer(), nullable=True),
        sa.Column('overhead_cost', sa.Numeric(12, 4), nullable=False, server_default='0'),
        sa.Column('material_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('labor_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('total_cost', sa.Numeric(18, 4), nullable=True),
        sa.Column('cost_calculated_at', sa.DateTime(), nullable=True),
        sa.Column('row_version', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'inactive', 'archived')",
            name='ck_bill_of_materials_status',
        ),
        sa.CheckConstraint('overhead_cost >= 0', name='ck_bill_of_materials_overhead_non_negative'),
        sa.ForeignKeyConstraint(['finished_product_id'], ['inventory_items.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index('ix_bill_of_materials_id', 'bill_of_materials', ['id'])
    op.create_index('ix_bill_of_materials_status', 'bill_of_materials', ['status'])
    op.create_index('ix_bill_of_materials_finished_product_id', 'bill_of_materials', ['finished_product_id'])
    op.create_index('ix_bill_of_materials_created_by', 'bill_of_materials', ['created_by'])

    op.create_table(
        'bom_components',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bom_id', sa.Integer(), nullable=False),
        sa.Column('component_type', sa.String(10), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('component_bom_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 4), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('waste_factor', sa.Numeric(6, 4), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(
            "(component_type = 'item' AND item_id IS NOT NULL AND component_bom_id IS NULL) OR "
            "(component_type = 'bom' AND component_bom_id IS NOT NULL AND item_id IS NULL)",
            name='ck_bom_components_single_reference',
        ),
        sa.CheckConstraint(
            'component_bom_id IS NULL OR component_bom_id <> bom_id',
            name='ck_bom_components_no_self_reference',
        ),
        sa.CheckConstraint('quantity > 0', name='ck_bom_components_quantity_positive'),
        sa.CheckConstraint(
            'waste_factor >= 0 AND waste_factor < 1',
            name='ck_bom_components_waste_factor_range',
        ),
        sa.ForeignKeyConstraint(['bom_id'], ['bill_of_materials.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id']),
        sa.ForeignKeyConstraint(['component_bom_id'], ['bill_of_materials.id']),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bom_components_id', 'bom_components', ['id'])
    op.create_index('ix_bom_components_bom_id', 'bom_components', ['bom_id'])
    op.create_index('ix_bom_components_item_id', 'bom_components', ['item_id'])
    op.create_index('ix_bom_components_component_bom_id', 'bom_components', ['component_bom_id'])
    op.create_index('ix_bom_components_bom_sort', 'bom_components', ['bom_id', 'sort_order'])

    op.create_table(
        'bom_operations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bom_id', sa.Integer(), nullable=False),
        sa.Column('operation_name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sequence_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('estimated_time_minutes', sa.Numeric(10, 2), nullable=False),
        sa.Column('labor_rate', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('machine_required', sa.String(200), nullable=True),
        sa.Column('skill_level', sa.String(20), nullable=False, server_default='basic'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('estimated_time_minutes > 0', name='ck_bom_operations_time_positive'),
        sa.CheckConstraint('labor_rate >= 0', name='ck_bom_operations_rate_non_negative'),
        sa.CheckConstraint(
            "skill_level IN ('basic', 'intermediate', 'advanced', 'expert')",
            name='ck_bom_operations_skill_level',
        ),
        sa.ForeignKeyConstraint(['bom_id'], ['bill_of_materials.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bom_operations_id', 'bom_operations', ['id'])
    op.create_index('ix_bom_operations_bom_id', 'bom_operations', ['bom_id'])
    op.create_index('ix_bom_operations_bom_sequence', 'bom_operations', ['bom_id', 'sequence_number'])

    op.create_table(
        'audit_trail',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('table_name', sa.String(100), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='NO ACTION'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_trail_id', 'audit_trail', ['id'])
    op.create_index('ix_audit_trail_table_name', 'audit_trail', ['table_name'])
    op.create_index('ix_audit_trail_record_id', 'audit_trail', ['record_id'])
    op.create_index('ix_audit_trail_timestamp', 'audit_trail', ['timestamp'])


def downgrade():
    """Drop all tables created in upgrade()."""
    op.drop_table('audit_trail')
    op.drop_table('bom_operations')
    op.drop_table('bom_components')
    op.drop_table('bill_of_materials')
    op.drop_table('users')
    op.drop_table('inventory_items')
    op.drop_table('units')
