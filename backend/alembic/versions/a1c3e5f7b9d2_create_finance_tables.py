"""Create finance tables

Creates insurers, transactions, expenses and insurance_payments.

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(connection, table_name: str) -> bool:
    """Check if a table exists."""
    return table_name in sa.inspect(connection).get_table_names()


def upgrade() -> None:
    conn = op.get_bind()

    if not table_exists(conn, 'insurers'):
        op.create_table(
            'insurers',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(255), nullable=False, unique=True),
            sa.Column('coverage_percentage', sa.Numeric(5, 2), nullable=False),
            sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
            sa.CheckConstraint(
                'coverage_percentage >= 0 AND coverage_percentage <= 100',
                name='chk_insurer_coverage_range'
            ),
        )
        op.create_index('ix_insurers_id', 'insurers', ['id'])

    if not table_exists(conn, 'transactions'):
        op.create_table(
            'transactions',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('patient_id', sa.Integer(), nullable=False),
            sa.Column('insurer_id', sa.Integer(), sa.ForeignKey('insurers.id', ondelete='RESTRICT'), nullable=True),
            sa.Column('total_billed_amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('patient_paid_amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('insurance_expected_amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('insurance_actual_paid_amount', sa.Numeric(12, 2), nullable=True),
            sa.Column('payment_method', sa.String(20), nullable=False, server_default='cash'),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('reported_by_id', sa.Integer(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
            sa.CheckConstraint(
                "payment_method IN ('cash', 'mobile_money', 'none')",
                name='chk_transaction_payment_method'
            ),
            sa.CheckConstraint('total_billed_amount >= 0', name='chk_transaction_total_non_negative'),
            sa.CheckConstraint('patient_paid_amount >= 0', name='chk_transaction_patient_paid_non_negative'),
            sa.CheckConstraint('insurance_expected_amount >= 0', name='chk_transaction_expected_non_negative'),
        )
        op.create_index('ix_transactions_id', 'transactions', ['id'])
        op.create_index('idx_transactions_created_at', 'transactions', ['created_at'])
        op.create_index('idx_transactions_insurer_created_at', 'transactions', ['insurer_id', 'created_at'])
        op.create_index('idx_transactions_patient', 'transactions', ['patient_id'])

    if not table_exists(conn, 'expenses'):
        op.create_table(
            'expenses',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('category', sa.String(20), nullable=False),
            sa.Column('expense_date', sa.Date(), nullable=False),
            sa.Column('reported_by_id', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.CheckConstraint("category IN ('clinical', 'operational')", name='chk_expense_category'),
            sa.CheckConstraint('amount >= 0', name='chk_expense_amount_non_negative'),
        )
        op.create_index('ix_expenses_id', 'expenses', ['id'])
        op.create_index('idx_expenses_expense_date', 'expenses', ['expense_date'])

    if not table_exists(conn, 'insurance_payments'):
        op.create_table(
            'insurance_payments',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('insurer_id', sa.Integer(), sa.ForeignKey('insurers.id', ondelete='RESTRICT'), nullable=False),
            sa.Column('period_start', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('period_end', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('amount_received', sa.Numeric(12, 2), nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
            sa.UniqueConstraint('insurer_id', 'period_start', name='uq_insurance_payments_insurer_period'),
        )
        op.create_index('ix_insurance_payments_id', 'insurance_payments', ['id'])


def downgrade() -> None:
    op.drop_table('insurance_payments')
    op.drop_table('expenses')
    op.drop_table('transactions')
    op.drop_table('insurers')
