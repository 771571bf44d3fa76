"""flow_tables

Revision ID: 3c7f2a91d4e8
Revises:
Create Date: 2026-10-19 09:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c7f2a91d4e8'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- Flow Rules ---
    op.create_table(
        'flow_rules',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('company_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('priority', sa.Integer(), server_default='100', nullable=False),
        sa.Column('stop_on_failure', sa.Boolean(), nullable=True),
        sa.Column('schedule_interval_seconds', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('version', sa.Integer(), server_default='1', nullable=True),
        sa.CheckConstraint('priority BETWEEN 1 AND 1000', name='ck_flow_rules_priority_range'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_flow_rules_company_id'), 'flow_rules', ['company_id'], unique=False)
    op.create_index('ix_flow_rules_match', 'flow_rules', ['company_id', 'trigger', 'is_active'], unique=False)

    # --- Flow Conditions ---
    op.create_table(
        'flow_conditions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('rule_id', sa.String(), nullable=False),
        sa.Column('field', sa.String(), nullable=False),
        sa.Column('operator', sa.String(), nullable=False),
        sa.Column('value_kind', sa.String(), nullable=False),
        sa.Column('value', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('logical_operator', sa.String(), server_default='AND', nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['rule_id'], ['flow_rules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rule_id', 'order', name='uq_flow_condition_order')
    )
    op.create_index(op.f('ix_flow_conditions_rule_id'), 'flow_conditions', ['rule_id'], unique=False)

    # --- Flow Actions ---
    op.create_table(
        'flow_actions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('rule_id', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('parameters', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['rule_id'], ['flow_rules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rule_id', 'order', name='uq_flow_action_order')
    )
    op.create_index(op.f('ix_flow_actions_rule_id'), 'flow_actions', ['rule_id'], unique=False)

    # --- Flow Executions (append-only, no FK so history outlives rules) ---
    op.create_table(
        'flow_executions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('rule_id', sa.String(), nullable=False),
        sa.Column('rule_name', sa.String(), nullable=True),
        sa.Column('company_id', sa.String(), nullable=False),
        sa.Column('trigger', sa.String(), nullable=False),
        sa.Column('triggered_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('error_detail', sa.Text(), nullable=True),
        sa.Column('action_results', postgresql.JSONB(astext_type=sa.Text()), server_default='[]', nullable=False),
        sa.Column('context', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('maintenance_id', sa.String(), nullable=True),
        sa.Column('asset_id', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_flow_executions_rule_id'), 'flow_executions', ['rule_id'], unique=False)
    op.create_index('ix_flow_executions_company_time', 'flow_executions', ['company_id', 'triggered_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_flow_executions_company_time', table_name='flow_executions')
    op.drop_index(op.f('ix_flow_executions_rule_id'), table_name='flow_executions')
    op.drop_table('flow_executions')
    op.drop_index(op.f('ix_flow_actions_rule_id'), table_name='flow_actions')
    op.drop_table('flow_actions')
    op.drop_index(op.f('ix_flow_conditions_rule_id'), table_name='flow_conditions')
    op.drop_table('flow_conditions')
    op.drop_index('ix_flow_rules_match', table_name='flow_rules')
    op.drop_index(op.f('ix_flow_rules_company_id'), table_name='flow_rules')
    op.drop_table('flow_rules')
