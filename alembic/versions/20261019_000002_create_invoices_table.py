"""Create invoices table

Revision ID: 20261019_000002
Revises: 20261019_000001
Create Date: 2026-10-19

This migration creates the invoices table: one row per payment attempt,
keyed by the local transaction id and the processor's invoice id.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000002'
down_revision: Union[str, None] = '20261019_000001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the invoices table."""
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('form_id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.String(length=190), nullable=False),
        sa.Column('invoice_number', sa.String(length=190), nullable=True),
        sa.Column('customer_name', sa.String(length=190), nullable=False),
        sa.Column('customer_email', sa.String(length=190), nullable=False),
        sa.Column('customer_company', sa.String(length=190), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('payment_provider', sa.String(length=50), nullable=False),
        sa.Column('payment_invoice_id', sa.String(length=190), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='unpaid'),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['form_id'],
            ['invoice_forms.id'],
            name='fk_invoices_form_id',
            ondelete='NO ACTION'
        ),
    )

    # Processor id drives webhook lookups and the compare-and-set update
    op.create_index('ix_invoices_payment_invoice_id', 'invoices', ['payment_invoice_id'], unique=True)
    op.create_index('ix_invoices_transaction_id', 'invoices', ['transaction_id'], unique=True)
    op.create_index('ix_invoices_form_id', 'invoices', ['form_id'])
    op.create_index('ix_invoices_payment_status', 'invoices', ['payment_status'])
    op.create_index('ix_invoices_payment_provider', 'invoices', ['payment_provider'])
    op.create_index('ix_invoices_customer_email', 'invoices', ['customer_email'])
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'])


def downgrade() -> None:
    """Drop the invoices table."""
    op.drop_index('ix_invoices_invoice_number', table_name='invoices')
    op.drop_index('ix_invoices_customer_email', table_name='invoices')
    op.drop_index('ix_invoices_payment_provider', table_name='invoices')
    op.drop_index('ix_invoices_payment_status', table_name='invoices')
    op.drop_index('ix_invoices_form_id', table_name='invoices')
    op.drop_index('ix_invoices_transaction_id', table_name='invoices')
    op.drop_index('ix_invoices_payment_invoice_id', table_name='invoices')
    op.drop_table('invoices')
