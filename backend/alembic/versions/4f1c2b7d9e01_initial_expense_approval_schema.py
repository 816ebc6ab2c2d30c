"""initial_expense_approval_schema

Revision ID: 4f1c2b7d9e01
Revises:
Create Date: 2026-10-12 09:30:00.000000

Companies, users, expense categories, expenses, approval rules with their
template steps, per-expense approval slots and the audit log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1c2b7d9e01'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'companies',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('country', sa.String(100), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'users',
        _id(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(32), server_default='employee', nullable=False),
        sa.Column('manager_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_manager_approver', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_manager_id', 'users', ['manager_id'])

    op.create_table(
        'expense_categories',
        _id(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_expense_categories_company_id', 'expense_categories', ['company_id'])

    op.create_table(
        'approval_rules',
        _id(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('rule_type', sa.String(32), nullable=False),
        sa.Column('min_amount_threshold', sa.Numeric(12, 2), nullable=True),
        sa.Column('max_amount_threshold', sa.Numeric(12, 2), nullable=True),
        sa.Column('percentage_required', sa.Integer(), nullable=True),
        sa.Column('specific_approver_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_hybrid', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_manager_approver', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('approvers_sequence', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['specific_approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'percentage_required IS NULL OR (percentage_required >= 0 AND percentage_required <= 100)',
            name='ck_approval_rules_percentage_range',
        ),
    )
    op.create_index('ix_approval_rules_company_id', 'approval_rules', ['company_id'])
    op.create_index(
        'ix_approval_rules_company_active_range', 'approval_rules',
        ['company_id', 'is_active', 'min_amount_threshold', 'max_amount_threshold'],
    )

    op.create_table(
        'approval_steps',
        _id(),
        sa.Column('approval_rule_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('approver_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('approver_role', sa.String(50), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['approval_rule_id'], ['approval_rules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approval_steps_approval_rule_id', 'approval_steps', ['approval_rule_id'])

    op.create_table(
        'expenses',
        _id(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('employee_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('expense_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('merchant_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(32), server_default='pending', nullable=False),
        sa.Column('current_approval_step', sa.Integer(), nullable=True),
        sa.Column('approval_rule_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('rule_snapshot', sa.JSON(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['users.id']),
        sa.ForeignKeyConstraint(['category_id'], ['expense_categories.id']),
        sa.ForeignKeyConstraint(['approval_rule_id'], ['approval_rules.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_expenses_company_id', 'expenses', ['company_id'])
    op.create_index('ix_expenses_employee_id', 'expenses', ['employee_id'])
    op.create_index('ix_expenses_status', 'expenses', ['status'])

    op.create_table(
        'expense_approvals',
        _id(),
        sa.Column('expense_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approver_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(32), server_default='pending', nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actioned_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['expense_id'], ['expenses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('expense_id', 'approver_id', 'step_order', name='uq_expense_approval_slot'),
    )
    op.create_index('ix_expense_approvals_expense_id', 'expense_approvals', ['expense_id'])
    op.create_index('ix_expense_approvals_approver_id', 'expense_approvals', ['approver_id'])

    op.create_table(
        'audit_logs',
        _id(),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor_email', sa.String(255), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('before_state', sa.Text(), nullable=True),
        sa.Column('after_state', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_company_id', 'audit_logs', ['company_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('expense_approvals')
    op.drop_table('expenses')
    op.drop_table('approval_steps')
    op.drop_table('approval_rules')
    op.drop_table('expense_categories')
    op.drop_table('users')
    op.drop_table('companies')
