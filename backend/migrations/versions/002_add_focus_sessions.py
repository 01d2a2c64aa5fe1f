"""Add focus sessions and per-task logged minutes

Revision ID: 002
Revises: 001
Create Date: 2026-10-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'planner_tasks',
        sa.Column('actual_minutes', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'planner_focus_sessions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('planner_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('task_id', UUID(as_uuid=True), sa.ForeignKey('planner_tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('time_block_id', UUID(as_uuid=True), sa.ForeignKey('planner_time_blocks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('planned_minutes', sa.Integer(), nullable=False),
        sa.Column('actual_minutes', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('goal', sa.Text(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('interruptions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_planner_focus_sessions_user_id', 'planner_focus_sessions', ['user_id'])
    op.create_index('idx_planner_focus_sessions_user_start', 'planner_focus_sessions', ['user_id', 'start_at'])


def downgrade() -> None:
    op.drop_index('idx_planner_focus_sessions_user_start', 'planner_focus_sessions')
    op.drop_index('ix_planner_focus_sessions_user_id', 'planner_focus_sessions')
    op.drop_table('planner_focus_sessions')

    op.drop_column('planner_tasks', 'actual_minutes')
