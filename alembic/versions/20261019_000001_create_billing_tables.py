"""Create billing tables

Revision ID: 20261019_000001
Revises: None
Create Date: 2026-10-19

Creates invoices, invoice line items, payments and the two lookup tables
billing reads (user preferences, staff property assignments). The users,
properties and units tables already exist.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INVOICE_STATUSES = ('draft', 'sent', 'overdue', 'paid', 'cancelled', 'void')
PAYMENT_STATUSES = ('pending', 'approved', 'completed', 'failed')


def upgrade() -> None:
    op.create_table(
        'user_preferences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('grace_period', sa.Integer(), nullable=True),
        sa.Column('default_currency', sa.String(length=3), nullable=True),
        sa.Column('default_rent_due_date', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_user_preferences_user', ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', name='uq_user_preferences_user'),
    )

    op.create_table(
        'staff_property_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='active', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['staff_id'], ['users.id'], name='fk_staff_assignments_staff', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], name='fk_staff_assignments_property', ondelete='CASCADE'),
        sa.UniqueConstraint('staff_id', 'property_id', name='uq_staff_property_assignment'),
    )
    op.create_index('ix_staff_property_assignments_staff_id', 'staff_property_assignments', ['staff_id'])
    op.create_index('ix_staff_property_assignments_property_id', 'staff_property_assignments', ['property_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('invoice_type', sa.String(length=50), server_default='monthly_rent', nullable=False),
        sa.Column('issued_by', sa.Integer(), nullable=False),
        sa.Column('issued_to', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(precision=12, scale=2), server_default='0', nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), server_default='0', nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column(
            'status',
            sa.Enum(*INVOICE_STATUSES, name='invoice_status', create_constraint=True),
            server_default='sent',
            nullable=False,
        ),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('payment_reference', sa.String(length=255), nullable=True),
        sa.Column('verification_token', sa.String(length=64), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['issued_by'], ['users.id'], name='fk_invoices_issued_by'),
        sa.ForeignKeyConstraint(['issued_to'], ['users.id'], name='fk_invoices_issued_to'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], name='fk_invoices_property'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], name='fk_invoices_unit'),
        sa.UniqueConstraint('company_id', 'invoice_number', name='uq_invoices_company_number'),
        sa.UniqueConstraint('verification_token', name='uq_invoices_verification_token'),
    )
    op.create_index('ix_invoices_company_id', 'invoices', ['company_id'])
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'])
    op.create_index('ix_invoices_issued_by', 'invoices', ['issued_by'])
    op.create_index('ix_invoices_issued_to', 'invoices', ['issued_to'])
    op.create_index('ix_invoices_property_id', 'invoices', ['property_id'])
    op.create_index('ix_invoices_unit_id', 'invoices', ['unit_id'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table(
        'invoice_line_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=10, scale=2), server_default='1', nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('item_type', sa.String(length=30), nullable=False),
        sa.Column('utility_type', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], name='fk_line_items_invoice', ondelete='CASCADE'),
    )
    op.create_index('ix_invoice_line_items_invoice_id', 'invoice_line_items', ['invoice_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_method', sa.String(length=30), nullable=False),
        sa.Column('payment_type', sa.String(length=30), server_default='rent', nullable=False),
        sa.Column(
            'status',
            sa.Enum(*PAYMENT_STATUSES, name='payment_status', create_constraint=True),
            server_default='pending',
            nullable=False,
        ),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('payment_period', sa.String(length=50), nullable=True),
        sa.Column('receipt_number', sa.String(length=100), nullable=False),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('reference_number', sa.String(length=255), nullable=True),
        sa.Column('received_from', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['users.id'], name='fk_payments_tenant'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], name='fk_payments_property'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], name='fk_payments_unit'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], name='fk_payments_invoice', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name='fk_payments_created_by'),
        sa.ForeignKeyConstraint(['processed_by'], ['users.id'], name='fk_payments_processed_by'),
        sa.UniqueConstraint('company_id', 'receipt_number', name='uq_payments_company_receipt'),
    )
    op.create_index('ix_payments_company_id', 'payments', ['company_id'])
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index(
        'uq_payments_transaction_id',
        'payments',
        ['transaction_id'],
        unique=True,
        mssql_where=sa.text('transaction_id IS NOT NULL'),
        sqlite_where=sa.text('transaction_id IS NOT NULL'),
        postgresql_where=sa.text('transaction_id IS NOT NULL'),
    )


def downgrade() -> None:
    op.drop_index('uq_payments_transaction_id', table_name='payments')
    op.drop_table('payments')
    op.drop_table('invoice_line_items')
    op.drop_table('invoices')
    op.drop_table('staff_property_assignments')
    op.drop_table('user_preferences')
