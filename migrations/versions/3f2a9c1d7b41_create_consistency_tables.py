"""create_consistency_tables

Revision ID: 3f2a9c1d7b41
Revises:
Create Date: 2026-10-19 10:12:44.218305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

unit_status = sa.Enum('AVAILABLE', 'RESERVED', 'SOLD', 'DAMAGED', name='unitstatus')
barcode_type = sa.Enum('UNIT', 'PRODUCT', name='barcodetype')
entity_type = sa.Enum('PRODUCT', 'PRODUCT_UNIT', name='entitytype')
barcode_format = sa.Enum('CODE128', 'GTIN13', 'INVALID', name='barcodeformat')
transaction_type = sa.Enum('PURCHASE', 'PAYMENT', 'RETURN', 'RECOVERY', name='transactiontype')
transaction_status = sa.Enum('PENDING', 'COMPLETED', 'CANCELLED', name='transactionstatus')


def timestamps():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    op.create_table(
        'products',
        *timestamps(),
        sa.Column('brand', sa.String(length=100), nullable=False),
        sa.Column('model', sa.String(length=150), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('min_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('max_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=True),
        sa.Column('threshold', sa.Integer(), nullable=True),
        sa.Column('has_serial', sa.Boolean(), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_products_id'), 'products', ['id'], unique=False)
    op.create_index(op.f('ix_products_barcode'), 'products', ['barcode'], unique=False)

    op.create_table(
        'suppliers',
        *timestamps(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('contact_person', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_suppliers_id'), 'suppliers', ['id'], unique=False)

    op.create_table(
        'supplier_transactions',
        *timestamps(),
        sa.Column('transaction_number', sa.String(length=50), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('type', transaction_type, nullable=False),
        sa.Column('status', transaction_status, nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_number'),
    )
    op.create_index(op.f('ix_supplier_transactions_id'), 'supplier_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_supplier_transactions_supplier_id'), 'supplier_transactions', ['supplier_id'], unique=False)

    op.create_table(
        'supplier_transaction_items',
        *timestamps(),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('product_unit_ids', sa.JSON(), nullable=True),
        sa.Column('unit_details', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['supplier_transactions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_supplier_transaction_items_id'), 'supplier_transaction_items', ['id'], unique=False)
    op.create_index(op.f('ix_supplier_transaction_items_transaction_id'), 'supplier_transaction_items', ['transaction_id'], unique=False)

    op.create_table(
        'product_units',
        *timestamps(),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=100), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=True),
        sa.Column('battery_level', sa.Integer(), nullable=True),
        sa.Column('color', sa.String(length=50), nullable=True),
        sa.Column('storage', sa.Integer(), nullable=True),
        sa.Column('ram', sa.Integer(), nullable=True),
        sa.Column('purchase_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('min_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('max_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('status', unit_status, nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('supplier_transaction_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.ForeignKeyConstraint(['supplier_transaction_id'], ['supplier_transactions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'serial_number', name='uq_product_units_product_serial'),
    )
    op.create_index(op.f('ix_product_units_id'), 'product_units', ['id'], unique=False)
    op.create_index(op.f('ix_product_units_product_id'), 'product_units', ['product_id'], unique=False)
    op.create_index(op.f('ix_product_units_barcode'), 'product_units', ['barcode'], unique=False)

    op.create_table(
        'barcode_registry',
        *timestamps(),
        sa.Column('barcode', sa.String(length=100), nullable=False),
        sa.Column('barcode_type', barcode_type, nullable=False),
        sa.Column('entity_type', entity_type, nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('format', barcode_format, nullable=False),
        sa.Column('generation_metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_barcode_registry_id'), 'barcode_registry', ['id'], unique=False)
    op.create_index(op.f('ix_barcode_registry_barcode'), 'barcode_registry', ['barcode'], unique=False)
    op.create_index('ix_barcode_registry_entity', 'barcode_registry', ['entity_type', 'entity_id'], unique=False)

    op.create_table(
        'barcode_counters',
        *timestamps(),
        sa.Column('counter_type', sa.String(length=20), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('counter_type'),
    )
    op.create_index(op.f('ix_barcode_counters_id'), 'barcode_counters', ['id'], unique=False)


def downgrade():
    op.drop_table('barcode_counters')
    op.drop_index('ix_barcode_registry_entity', table_name='barcode_registry')
    op.drop_table('barcode_registry')
    op.drop_table('product_units')
    op.drop_table('supplier_transaction_items')
    op.drop_table('supplier_transactions')
    op.drop_table('suppliers')
    op.drop_table('products')

    bind = op.get_bind()
    for enum in (unit_status, barcode_type, entity_type, barcode_format, transaction_type, transaction_status):
        enum.drop(bind, checkfirst=True)
