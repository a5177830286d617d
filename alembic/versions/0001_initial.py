"""Initial tables

Revision ID: 0001_initial
Revises:
Create Date: 2024-06-20 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _placement() -> list:
    """Creator and organizational placement shared by events and series."""
    return [
        sa.Column('creator_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('office_id', sa.Integer(), sa.ForeignKey('offices.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('division_id', sa.Integer(), sa.ForeignKey('divisions.id', ondelete='SET NULL'), nullable=True, index=True),
    ]


def upgrade() -> None:
    """Organization tree, users, calendar, notifications, reminder ledger and settings."""
    op.create_table(
        'divisions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
    )
    op.create_table(
        'offices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('division_id', sa.Integer(), sa.ForeignKey('divisions.id', ondelete='SET NULL'), nullable=True, index=True),
    )
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('office_id', sa.Integer(), sa.ForeignKey('offices.id', ondelete='SET NULL'), nullable=True, index=True),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, comment="ADMIN | USER"),
        sa.Column('position', sa.String(length=64), nullable=True, comment="Job position label"),
        sa.Column('scope', sa.String(length=16), nullable=True, comment="Leadership breadth: DIVISION | OFFICE | DEPARTMENT | NULL"),
        sa.Column('division_id', sa.Integer(), sa.ForeignKey('divisions.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('office_id', sa.Integer(), sa.ForeignKey('offices.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('approval_status', sa.String(length=16), nullable=False, server_default='APPROVED'),
        sa.Column('email_notifications_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_preferences', sa.JSON(), nullable=True, comment="type -> bool opt-out map"),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('endpoint', sa.String(length=1024), nullable=False, unique=True),
        sa.Column('p256dh', sa.String(length=255), nullable=False),
        sa.Column('auth', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Calendar
    op.create_table(
        'event_series',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('recurrence_type', sa.String(length=8), nullable=False, comment="day | week | month"),
        sa.Column('recurrence_interval', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('recurrence_end_date', sa.Date(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('first_occurrence_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('alert', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('priority', sa.String(length=16), nullable=True),
        *_placement(),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('recurrence_interval >= 1', name='check_recurrence_interval'),
        sa.CheckConstraint('duration_days >= 0', name='check_duration_days'),
    )
    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('start_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('end_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING', index=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('alert', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('priority', sa.String(length=16), nullable=True),
        *_placement(),
        sa.Column('series_id', sa.Integer(), sa.ForeignKey('event_series.id', ondelete='CASCADE'), nullable=True),
        sa.Column('occurrence_date', sa.Date(), nullable=True),
        sa.Column('is_exception', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('original_series_id', sa.Integer(), sa.ForeignKey('event_series.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('end_at > start_at', name='check_time_range'),
    )
    op.create_index('ix_events_series_occurrence', 'events', ['series_id', 'occurrence_date'])

    op.create_table(
        'event_exceptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('series_id', sa.Integer(), sa.ForeignKey('event_series.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('exception_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('series_id', 'exception_date', name='uq_event_exceptions_series_date'),
    )
    op.create_table(
        'event_shared_targets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('series_id', sa.Integer(), sa.ForeignKey('event_series.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('office_id', sa.Integer(), sa.ForeignKey('offices.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='CASCADE'), nullable=True),
        sa.CheckConstraint(
            '(event_id IS NOT NULL AND series_id IS NULL) OR (event_id IS NULL AND series_id IS NOT NULL)',
            name='check_shared_target_owner',
        ),
    )
    op.create_table(
        'event_shared_target_positions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shared_target_id', sa.Integer(), sa.ForeignKey('event_shared_targets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('position', sa.String(length=64), nullable=False),
        sa.UniqueConstraint('shared_target_id', 'position', name='uq_shared_target_position'),
    )

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('related_event_id', sa.Integer(), sa.ForeignKey('events.id', ondelete='SET NULL'), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('dedup_key', sa.String(length=255), nullable=True, index=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
    )
    op.create_index('ix_notifications_user_unread', 'notifications', ['user_id', 'is_read'])
    op.create_index('ix_notifications_user_dedup', 'notifications', ['user_id', 'type', 'dedup_key'])

    # Reminder ledger
    op.create_table(
        'reminder_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_key', sa.String(length=200), nullable=False, unique=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('trigger_type', sa.String(length=16), nullable=False),
        sa.Column('offset_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('target_at', sa.DateTime(), nullable=False),
        sa.Column('task_id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('series_id', sa.Integer(), sa.ForeignKey('event_series.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('occurrence_date', sa.Date(), nullable=True),
        sa.Column('fired_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_reminder_jobs_status_scheduled_at', 'reminder_jobs', ['status', 'scheduled_at'])

    op.create_table(
        'system_settings',
        sa.Column('key', sa.String(length=64), primary_key=True),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drops everything in reverse dependency order."""
    op.drop_table('system_settings')
    op.drop_index('ix_reminder_jobs_status_scheduled_at', table_name='reminder_jobs')
    op.drop_table('reminder_jobs')
    op.drop_index('ix_notifications_user_dedup', table_name='notifications')
    op.drop_index('ix_notifications_user_unread', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('event_shared_target_positions')
    op.drop_table('event_shared_targets')
    op.drop_table('event_exceptions')
    op.drop_index('ix_events_series_occurrence', table_name='events')
    op.drop_table('events')
    op.drop_table('event_series')
    op.drop_table('push_subscriptions')
    op.drop_table('users')
    op.drop_table('departments')
    op.drop_table('offices')
    op.drop_table('divisions')
