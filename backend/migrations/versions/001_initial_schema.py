"""Initial planner schema: users, channels, tasks, time blocks, calendar integrations

Revision ID: 001
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # btree_gist lets the overlap constraint mix = on user_id with && on ranges
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')

    # Users
    op.create_table(
        'planner_users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_planner_users_email', 'planner_users', ['email'])

    # Channels
    op.create_table(
        'planner_channels',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('planner_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('visibility', sa.String(20), nullable=False, server_default='private'),
        sa.Column('target_calendar_id', sa.String(255), nullable=True),
        sa.Column('color', sa.String(7), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_planner_channels_user_id', 'planner_channels', ['user_id'])
    op.create_index('idx_planner_channels_user_calendar', 'planner_channels', ['user_id', 'target_calendar_id'])

    # Tasks
    op.create_table(
        'planner_tasks',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('planner_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('channel_id', UUID(as_uuid=True), sa.ForeignKey('planner_channels.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='todo'),
        sa.Column('priority_level', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('importance', sa.Integer(), nullable=True),
        sa.Column('urgency', sa.Integer(), nullable=True),
        sa.Column('priority_score', sa.Float(), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_planner_tasks_user_id', 'planner_tasks', ['user_id'])
    op.create_index('idx_planner_tasks_user_status', 'planner_tasks', ['user_id', 'status'])
    op.create_index('idx_planner_tasks_priority', 'planner_tasks', ['user_id', 'priority_score'])

    # Time blocks
    op.create_table(
        'planner_time_blocks',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('planner_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('task_id', UUID(as_uuid=True), sa.ForeignKey('planner_tasks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('channel_id', UUID(as_uuid=True), sa.ForeignKey('planner_channels.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='tentative'),
        sa.Column('provider', sa.String(20), nullable=False, server_default='local'),
        sa.Column('calendar_event_id', sa.String(255), nullable=True),
        sa.Column('location', sa.String(500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('recurrence_rule', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'calendar_event_id', name='uq_planner_time_blocks_user_calendar_event'),
        sa.CheckConstraint('end_at > start_at', name='ck_planner_time_blocks_positive_length'),
    )
    op.create_index('ix_planner_time_blocks_user_id', 'planner_time_blocks', ['user_id'])
    op.create_index('idx_planner_time_blocks_user_start', 'planner_time_blocks', ['user_id', 'start_at'])
    op.create_index('idx_planner_time_blocks_user_status', 'planner_time_blocks', ['user_id', 'status'])

    # Local, non-cancelled blocks of one user may not overlap. Synced blocks are exempt.
    op.execute("""
        ALTER TABLE planner_time_blocks
        ADD CONSTRAINT excl_planner_time_blocks_no_overlap
        EXCLUDE USING gist (
            user_id WITH =,
            tstzrange(start_at, end_at, '[)') WITH &&
        )
        WHERE (status <> 'cancelled' AND provider = 'local')
    """)

    # Calendar integrations
    op.create_table(
        'planner_calendar_integrations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('planner_users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('calendar_id', sa.String(255), nullable=True),
        sa.Column('sync_mode', sa.String(20), nullable=False, server_default='polling'),
        sa.Column('sync_state', JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'provider', name='uq_planner_calendar_integration_user_provider'),
    )
    op.create_index('ix_planner_calendar_integrations_user_id', 'planner_calendar_integrations', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_planner_calendar_integrations_user_id', 'planner_calendar_integrations')
    op.drop_table('planner_calendar_integrations')

    op.execute('ALTER TABLE planner_time_blocks DROP CONSTRAINT IF EXISTS excl_planner_time_blocks_no_overlap')
    op.drop_index('idx_planner_time_blocks_user_status', 'planner_time_blocks')
    op.drop_index('idx_planner_time_blocks_user_start', 'planner_time_blocks')
    op.drop_index('ix_planner_time_blocks_user_id', 'planner_time_blocks')
    op.drop_table('planner_time_blocks')

    op.drop_index('idx_planner_tasks_priority', 'planner_tasks')
    op.drop_index('idx_planner_tasks_user_status', 'planner_tasks')
    op.drop_index('ix_planner_tasks_user_id', 'planner_tasks')
    op.drop_table('planner_tasks')

    op.drop_index('idx_planner_channels_user_calendar', 'planner_channels')
    op.drop_index('ix_planner_channels_user_id', 'planner_channels')
    op.drop_table('planner_channels')

    op.drop_index('ix_planner_users_email', 'planner_users')
    op.drop_table('planner_users')
