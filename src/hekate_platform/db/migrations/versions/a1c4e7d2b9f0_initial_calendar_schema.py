"""Initial calendar schema

Revision ID: a1c4e7d2b9f0
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7d2b9f0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


event_type_enum = sa.Enum(
    'WEBINAR', 'WORKSHOP', 'COURSE', 'MEETING', 'COMMUNITY', 'CONFERENCE',
    'NETWORKING', 'TRAINING', name='event_type_enum',
)
event_status_enum = sa.Enum('DRAFT', 'PUBLISHED', 'CANCELLED', name='event_status_enum')
event_access_type_enum = sa.Enum('FREE', 'PAID', 'TIER', name='event_access_type_enum')
event_mode_enum = sa.Enum('ONLINE', 'IN_PERSON', 'HYBRID', name='event_mode_enum')
registration_status_enum = sa.Enum(
    'REGISTERED', 'CONFIRMED', 'WAITLISTED', 'CANCELLED', name='registration_status_enum'
)
calendar_provider_enum = sa.Enum('GOOGLE', 'OUTLOOK', name='calendar_provider_enum')
sync_operation_enum = sa.Enum('CREATE', 'UPDATE', name='sync_operation_enum')
sync_direction_enum = sa.Enum('IMPORT', 'EXPORT', name='sync_direction_enum')
sync_status_enum = sa.Enum('SYNCED', 'FAILED', 'PENDING', name='sync_status_enum')
conflict_type_enum = sa.Enum('DATA_MISMATCH', name='conflict_type_enum')


def upgrade() -> None:
    op.create_table(
        'calendar_users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'calendar_events',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', event_type_enum, nullable=False),
        sa.Column('status', event_status_enum, nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('location', sa.String(length=1000), nullable=True),
        sa.Column('virtual_link', sa.String(length=1000), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False),
        sa.Column('max_attendees', sa.Integer(), nullable=True),
        sa.Column('requires_approval', sa.Boolean(), nullable=False),
        sa.Column('access_type', event_access_type_enum, nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('free_tiers', sa.JSON(), nullable=True),
        sa.Column('mode', event_mode_enum, nullable=False),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('creator_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('start_date < end_date', name='ck_event_start_before_end'),
        sa.ForeignKeyConstraint(['creator_id'], ['calendar_users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_event_start', 'calendar_events', ['start_date'], unique=False)
    op.create_index('ix_event_creator', 'calendar_events', ['creator_id'], unique=False)
    op.create_index('ix_event_status', 'calendar_events', ['status'], unique=False)

    op.create_table(
        'calendar_event_registrations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('status', registration_status_enum, nullable=False),
        sa.Column('registered_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['event_id'], ['calendar_events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['calendar_users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id', 'user_id', name='uq_registration_event_user'),
    )
    op.create_index(
        'ix_registration_user', 'calendar_event_registrations', ['user_id'], unique=False
    )

    op.create_table(
        'calendar_recurrence_rules',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=False),
        sa.Column('frequency', sa.String(length=20), nullable=False),
        sa.Column('interval', sa.Integer(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=True),
        sa.Column('until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('by_weekday', sa.JSON(), nullable=True),
        sa.Column('by_month_day', sa.JSON(), nullable=True),
        sa.Column('by_month', sa.JSON(), nullable=True),
        sa.Column('by_set_pos', sa.Integer(), nullable=True),
        sa.Column('lunar_phase', sa.String(length=10), nullable=True),
        sa.Column('exceptions', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('interval >= 1', name='ck_rule_interval_positive'),
        sa.CheckConstraint(
            'NOT (count IS NOT NULL AND until IS NOT NULL)', name='ck_rule_count_xor_until'
        ),
        sa.ForeignKeyConstraint(['event_id'], ['calendar_events.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_rule_event', 'calendar_recurrence_rules', ['event_id'], unique=False)

    op.create_table(
        'calendar_integrations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('provider', calendar_provider_enum, nullable=False),
        sa.Column('external_account_id', sa.String(length=255), nullable=False),
        sa.Column('external_account_email', sa.String(length=255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['calendar_users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'user_id', 'provider', 'external_account_id',
            name='uq_integration_user_provider_account',
        ),
    )

    op.create_table(
        'calendar_sync_events',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('integration_id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=True),
        sa.Column('external_id', sa.String(length=1024), nullable=True),
        sa.Column('operation', sync_operation_enum, nullable=False),
        sa.Column('direction', sync_direction_enum, nullable=False),
        sa.Column('status', sync_status_enum, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['integration_id'], ['calendar_integrations.id'], ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(['event_id'], ['calendar_events.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'integration_id', 'external_id', name='uq_sync_event_integration_external'
        ),
    )
    op.create_index(
        'ix_sync_event_event', 'calendar_sync_events', ['integration_id', 'event_id'],
        unique=False,
    )
    op.create_index('ix_sync_event_created', 'calendar_sync_events', ['created_at'], unique=False)

    op.create_table(
        'calendar_conflicts',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('integration_id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=True),
        sa.Column('external_id', sa.String(length=1024), nullable=False),
        sa.Column('conflict_type', conflict_type_enum, nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('local_data', sa.JSON(), nullable=False),
        sa.Column('external_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution', sa.String(length=50), nullable=True),
        sa.ForeignKeyConstraint(
            ['integration_id'], ['calendar_integrations.id'], ondelete='CASCADE'
        ),
        sa.ForeignKeyConstraint(['event_id'], ['calendar_events.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_conflict_integration', 'calendar_conflicts', ['integration_id'], unique=False
    )


def downgrade() -> None:
    op.drop_index('ix_conflict_integration', table_name='calendar_conflicts')
    op.drop_table('calendar_conflicts')
    op.drop_index('ix_sync_event_created', table_name='calendar_sync_events')
    op.drop_index('ix_sync_event_event', table_name='calendar_sync_events')
    op.drop_table('calendar_sync_events')
    op.drop_table('calendar_integrations')
    op.drop_index('ix_rule_event', table_name='calendar_recurrence_rules')
    op.drop_table('calendar_recurrence_rules')
    op.drop_index('ix_registration_user', table_name='calendar_event_registrations')
    op.drop_table('calendar_event_registrations')
    op.drop_index('ix_event_status', table_name='calendar_events')
    op.drop_index('ix_event_creator', table_name='calendar_events')
    op.drop_index('ix_event_start', table_name='calendar_events')
    op.drop_table('calendar_events')
    op.drop_table('calendar_users')

    bind = op.get_bind()
    for enum in (
        conflict_type_enum,
        sync_status_enum,
        sync_direction_enum,
        sync_operation_enum,
        calendar_provider_enum,
        registration_status_enum,
        event_mode_enum,
        event_access_type_enum,
        event_status_enum,
        event_type_enum,
    ):
        enum.drop(bind, checkfirst=True)
