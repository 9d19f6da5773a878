"""Initial engagement schema

Revision ID: 5d2e81c4a0b7
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5d2e81c4a0b7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = 'engagement'

activity_action = postgresql.ENUM(
    'VIEWED', 'ADDED_TO_CART', 'BUY', 'ACCOUNT_CREATED',
    name='activityaction', schema=SCHEMA, create_type=False,
)
campaign_type = postgresql.ENUM(
    'ABANDONED_CART', 'FREQUENT_VIEWER', 'PURCHASE_CONFIRMATION',
    name='campaigntype', schema=SCHEMA, create_type=False,
)
campaign_state = postgresql.ENUM(
    'IDLE', 'RUNNING', 'COMPLETED', 'FAILED',
    name='campaignstate', schema=SCHEMA, create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    activity_action.create(bind, checkfirst=True)
    campaign_type.create(bind, checkfirst=True)
    campaign_state.create(bind, checkfirst=True)

    # Create user_activities table
    op.create_table('user_activities',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('external_user_id', sa.String(length=255), nullable=False),
    sa.Column('external_product_id', sa.String(length=255), nullable=True),
    sa.Column('action', activity_action, nullable=False),
    sa.Column('is_logged_in_user', sa.Boolean(), nullable=False),
    sa.Column('views', sa.Integer(), server_default='0', nullable=False),
    sa.Column('purchases', sa.Integer(), server_default='0', nullable=False),
    sa.Column('cart_adds', sa.Integer(), server_default='0', nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema=SCHEMA
    )
    op.create_index(op.f('ix_engagement_user_activities_external_user_id'), 'user_activities', ['external_user_id'], unique=False, schema=SCHEMA)
    op.create_index(op.f('ix_engagement_user_activities_external_product_id'), 'user_activities', ['external_product_id'], unique=False, schema=SCHEMA)
    op.create_index(op.f('ix_engagement_user_activities_action'), 'user_activities', ['action'], unique=False, schema=SCHEMA)
    op.create_index('ix_user_activities_action_product', 'user_activities', ['action', 'external_product_id'], unique=False, schema=SCHEMA)
    # One row per tuple; account_created rows carry no product
    op.create_index(
        'uq_user_activities_tuple',
        'user_activities',
        ['external_user_id', sa.text("COALESCE(external_product_id, '')"), 'action'],
        unique=True,
        schema=SCHEMA,
    )

    # Create campaign_watermarks table
    op.create_table('campaign_watermarks',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('campaign_type', campaign_type, nullable=False),
    sa.Column('external_user_id', sa.String(length=255), nullable=False),
    sa.Column('external_product_id', sa.String(length=255), nullable=True),
    sa.Column('last_notified_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('notification_count', sa.Integer(), server_default='1', nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema=SCHEMA
    )
    op.create_index(op.f('ix_engagement_campaign_watermarks_external_user_id'), 'campaign_watermarks', ['external_user_id'], unique=False, schema=SCHEMA)
    op.create_index(
        'uq_campaign_watermarks_target',
        'campaign_watermarks',
        ['campaign_type', 'external_user_id', sa.text("COALESCE(external_product_id, '')")],
        unique=True,
        schema=SCHEMA,
    )

    # Create campaign_runs table
    op.create_table('campaign_runs',
    sa.Column('campaign_type', campaign_type, nullable=False),
    sa.Column('state', campaign_state, nullable=False),
    sa.Column('last_outcome', campaign_state, nullable=True),
    sa.Column('last_started_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_finished_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('recipients', sa.Integer(), server_default='0', nullable=False),
    sa.Column('sent', sa.Integer(), server_default='0', nullable=False),
    sa.Column('failed', sa.Integer(), server_default='0', nullable=False),
    sa.Column('skipped', sa.Integer(), server_default='0', nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('campaign_type'),
    schema=SCHEMA
    )


def downgrade() -> None:
    op.drop_table('campaign_runs', schema=SCHEMA)
    op.drop_index('uq_campaign_watermarks_target', table_name='campaign_watermarks', schema=SCHEMA)
    op.drop_index(op.f('ix_engagement_campaign_watermarks_external_user_id'), table_name='campaign_watermarks', schema=SCHEMA)
    op.drop_table('campaign_watermarks', schema=SCHEMA)
    op.drop_index('uq_user_activities_tuple', table_name='user_activities', schema=SCHEMA)
    op.drop_index('ix_user_activities_action_product', table_name='user_activities', schema=SCHEMA)
    op.drop_index(op.f('ix_engagement_user_activities_action'), table_name='user_activities', schema=SCHEMA)
    op.drop_index(op.f('ix_engagement_user_activities_external_product_id'), table_name='user_activities', schema=SCHEMA)
    op.drop_index(op.f('ix_engagement_user_activities_external_user_id'), table_name='user_activities', schema=SCHEMA)
    op.drop_table('user_activities', schema=SCHEMA)

    bind = op.get_bind()
    campaign_state.drop(bind, checkfirst=True)
    campaign_type.drop(bind, checkfirst=True)
    activity_action.drop(bind, checkfirst=True)
