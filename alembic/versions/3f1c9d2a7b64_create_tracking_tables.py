"""Create tracking tables

Revision ID: 3f1c9d2a7b64
Revises:
Create Date: 2026-10-19 10:12:41.517203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9d2a7b64'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('email', sa.String(), nullable=True, unique=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'tracking_events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('event_category', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('course_id', sa.String(), nullable=True),
        sa.Column('module_id', sa.String(), nullable=True),
        sa.Column('lesson_id', sa.String(), nullable=True),
        sa.Column('course_version', sa.String(), nullable=True),
        sa.Column('content_type', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_tracking_events_user_id', 'tracking_events', ['user_id'])
    op.create_index('ix_tracking_events_session_id', 'tracking_events', ['session_id'])
    op.create_index('ix_tracking_events_event_type', 'tracking_events', ['event_type'])
    op.create_index('ix_tracking_events_timestamp', 'tracking_events', ['timestamp'])
    op.create_index('idx_tracking_user_timestamp', 'tracking_events', ['user_id', 'timestamp'])
    op.create_index('idx_tracking_category_type', 'tracking_events', ['event_category', 'event_type'])

    op.create_table(
        'anonymous_tracking_profiles',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('anonymous_id', sa.String(), nullable=False, unique=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('first_seen', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_anonymous_tracking_profiles_user_id', 'anonymous_tracking_profiles', ['user_id'])


def downgrade():
    op.drop_table('anonymous_tracking_profiles')
    op.drop_index('idx_tracking_category_type', 'tracking_events')
    op.drop_index('idx_tracking_user_timestamp', 'tracking_events')
    op.drop_table('tracking_events')
    op.drop_table('users')
