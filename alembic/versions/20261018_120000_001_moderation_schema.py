"""Moderation schema: users, reports, actions, restrictions, rate limits, outbox

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'reports',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('reporter_id', sa.Uuid(), nullable=True),
        sa.Column('reported_user_id', sa.Uuid(), nullable=True),
        sa.Column('report_type', sa.String(20), nullable=False),
        sa.Column('target_id', sa.Uuid(), nullable=False),
        sa.Column('reason', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('moderator_flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reviewed_by', sa.Uuid(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('action_taken', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('priority BETWEEN 1 AND 5', name='ck_reports_priority_range'),
        sa.ForeignKeyConstraint(['reporter_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['reported_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reports_reported_user_id', 'reports', ['reported_user_id'])
    op.create_index(
        'ix_reports_queue_order',
        'reports',
        ['status', 'moderator_flagged', 'priority', 'created_at'],
    )
    op.create_index(
        'ix_reports_reporter_target', 'reports', ['reporter_id', 'report_type', 'target_id']
    )

    op.create_table(
        'moderation_actions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('moderator_id', sa.Uuid(), nullable=False),
        sa.Column('target_user_id', sa.Uuid(), nullable=False),
        sa.Column('action_type', sa.String(50), nullable=False),
        sa.Column('target_type', sa.String(20), nullable=True),
        sa.Column('target_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('related_report_id', sa.Uuid(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('notification_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notification_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_by', sa.Uuid(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['moderator_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['target_user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['related_report_id'], ['reports.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['revoked_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_moderation_actions_action_type', 'moderation_actions', ['action_type'])
    op.create_index('ix_moderation_actions_created_at', 'moderation_actions', ['created_at'])
    op.create_index(
        'ix_moderation_actions_moderator', 'moderation_actions', ['moderator_id', 'created_at']
    )
    op.create_index(
        'ix_moderation_actions_target_user', 'moderation_actions', ['target_user_id', 'created_at']
    )

    op.create_table(
        'user_restrictions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('restriction_type', sa.String(30), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('applied_by', sa.Uuid(), nullable=False),
        sa.Column('related_action_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['applied_by'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(
            ['related_action_id'], ['moderation_actions.id'], ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_restrictions_user_id', 'user_restrictions', ['user_id'])
    op.create_index(
        'ix_user_restrictions_related_action_id', 'user_restrictions', ['related_action_id']
    )
    op.create_index('ix_user_restrictions_expiry', 'user_restrictions', ['is_active', 'expires_at'])
    op.create_index(
        'uq_user_restrictions_active_type',
        'user_restrictions',
        ['user_id', 'restriction_type'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )

    op.create_table(
        'rate_limit_buckets',
        sa.Column('key', sa.String(128), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )
    op.create_table(
        'rate_limit_hits',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['key'], ['rate_limit_buckets.key'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_rate_limit_hits_key_created', 'rate_limit_hits', ['key', 'created_at'])

    op.create_table(
        'notification_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('recipient_id', sa.Uuid(), nullable=False),
        sa.Column('kind', sa.String(50), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('related_action_id', sa.Uuid(), nullable=True),
        sa.Column('related_report_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['related_action_id'], ['moderation_actions.id'], ondelete='SET NULL'
        ),
        sa.ForeignKeyConstraint(['related_report_id'], ['reports.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notification_events_recipient_id', 'notification_events', ['recipient_id'])
    op.create_index(
        'ix_notification_events_undelivered', 'notification_events', ['delivered_at', 'created_at']
    )

    op.create_table(
        'content_tombstones',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('content_type', sa.String(20), nullable=False),
        sa.Column('content_id', sa.Uuid(), nullable=False),
        sa.Column('removed_by', sa.Uuid(), nullable=False),
        sa.Column('action_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['removed_by'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['action_id'], ['moderation_actions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('content_type', 'content_id', name='uq_content_tombstones_target'),
    )


def downgrade() -> None:
    op.drop_table('content_tombstones')
    op.drop_index('ix_notification_events_undelivered', table_name='notification_events')
    op.drop_index('ix_notification_events_recipient_id', table_name='notification_events')
    op.drop_table('notification_events')
    op.drop_index('ix_rate_limit_hits_key_created', table_name='rate_limit_hits')
    op.drop_table('rate_limit_hits')
    op.drop_table('rate_limit_buckets')
    op.drop_index('uq_user_restrictions_active_type', table_name='user_restrictions')
    op.drop_index('ix_user_restrictions_expiry', table_name='user_restrictions')
    op.drop_index('ix_user_restrictions_related_action_id', table_name='user_restrictions')
    op.drop_index('ix_user_restrictions_user_id', table_name='user_restrictions')
    op.drop_table('user_restrictions')
    op.drop_index('ix_moderation_actions_target_user', table_name='moderation_actions')
    op.drop_index('ix_moderation_actions_moderator', table_name='moderation_actions')
    op.drop_index('ix_moderation_actions_created_at', table_name='moderation_actions')
    op.drop_index('ix_moderation_actions_action_type', table_name='moderation_actions')
    op.drop_table('moderation_actions')
    op.drop_index('ix_reports_reporter_target', table_name='reports')
    op.drop_index('ix_reports_queue_order', table_name='reports')
    op.drop_index('ix_reports_reported_user_id', table_name='reports')
    op.drop_table('reports')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
