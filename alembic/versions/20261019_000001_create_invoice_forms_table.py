"""Create invoice_forms table

Revision ID: 20261019_000001
Revises: None
Create Date: 2026-10-19

This migration creates the invoice_forms table holding operator defined
payment form settings.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the invoice_forms table."""
    op.create_table(
        'invoice_forms',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('form_type', sa.String(length=50), nullable=False, server_default='bif_invoice_form'),
        sa.Column('amount', sa.Numeric(precision=18, scale=8), nullable=True),
        sa.Column('currency', sa.String(length=10), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('provider_override', sa.String(length=50), nullable=True),
        sa.Column('discount_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('discount_type', sa.String(length=20), nullable=False, server_default='fixed'),
        sa.Column('discount_value', sa.Numeric(precision=18, scale=8), nullable=True),
        sa.Column('success_page', sa.String(length=500), nullable=True),
        sa.Column('thank_you_message', sa.Text(), nullable=True),
        sa.Column('admin_email', sa.String(length=255), nullable=True),
        sa.Column('email_subject', sa.String(length=255), nullable=True),
        sa.Column('email_template', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    """Drop the invoice_forms table."""
    op.drop_table('invoice_forms')
