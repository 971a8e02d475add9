"""Initial personalization schema

Revision ID: 4c2e91a7d5b3
Revises:
Create Date: 2026-10-05 10:30:41.208113+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4c2e91a7d5b3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('user_preference_profiles',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('survey_completed', sa.Boolean(), nullable=False),
    sa.Column('survey', sa.JSON(), nullable=False),
    sa.Column('category_frequency', sa.JSON(), nullable=False),
    sa.Column('category_weights', sa.JSON(), nullable=False),
    sa.Column('search_history', sa.JSON(), nullable=False),
    sa.Column('product_interactions', sa.JSON(), nullable=False),
    sa.Column('dashboard_categories', sa.JSON(), nullable=False),
    sa.Column('engagement_score', sa.Float(), nullable=False),
    sa.Column('version', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='personalization'
    )
    op.create_index(op.f('ix_personalization_user_preference_profiles_user_id'), 'user_preference_profiles', ['user_id'], unique=True, schema='personalization')

    op.create_table('sustainability_goals',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('title', sa.String(length=100), nullable=False),
    sa.Column('description', sa.String(length=300), nullable=False),
    sa.Column('goal_type', sa.String(length=32), nullable=False),
    sa.Column('goal_config', sa.JSON(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('total_items', sa.Integer(), nullable=False),
    sa.Column('goal_met_items', sa.Integer(), nullable=False),
    sa.Column('total_value', sa.Float(), nullable=False),
    sa.Column('goal_met_value', sa.Float(), nullable=False),
    sa.Column('total_purchases', sa.Integer(), nullable=False),
    sa.Column('goal_met_purchases', sa.Integer(), nullable=False),
    sa.Column('current_percentage', sa.Float(), nullable=False),
    sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    schema='personalization'
    )
    op.create_index(op.f('ix_personalization_sustainability_goals_user_id'), 'sustainability_goals', ['user_id'], unique=False, schema='personalization')
    op.create_index('ix_sustainability_goals_user_active', 'sustainability_goals', ['user_id', 'is_active'], unique=False, schema='personalization')

    op.create_table('goal_purchase_ledger',
    sa.Column('goal_id', sa.String(length=36), nullable=False),
    sa.Column('order_id', sa.String(length=255), nullable=False),
    sa.Column('counted_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['goal_id'], ['personalization.sustainability_goals.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('goal_id', 'order_id'),
    schema='personalization'
    )

    op.create_table('goal_notifications',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('user_id', sa.String(length=255), nullable=False),
    sa.Column('goal_id', sa.String(length=36), nullable=False),
    sa.Column('milestone_type', sa.String(length=16), nullable=False),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('message', sa.Text(), nullable=False),
    sa.Column('percentage', sa.Float(), nullable=False),
    sa.Column('is_read', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['goal_id'], ['personalization.sustainability_goals.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'goal_id', 'milestone_type', name='uq_goal_notifications_milestone'),
    schema='personalization'
    )
    op.create_index(op.f('ix_personalization_goal_notifications_user_id'), 'goal_notifications', ['user_id'], unique=False, schema='personalization')
    op.create_index(op.f('ix_personalization_goal_notifications_created_at'), 'goal_notifications', ['created_at'], unique=False, schema='personalization')


def downgrade() -> None:
    op.drop_index(op.f('ix_personalization_goal_notifications_created_at'), table_name='goal_notifications', schema='personalization')
    op.drop_index(op.f('ix_personalization_goal_notifications_user_id'), table_name='goal_notifications', schema='personalization')
    op.drop_table('goal_notifications', schema='personalization')
    op.drop_table('goal_purchase_ledger', schema='personalization')
    op.drop_index('ix_sustainability_goals_user_active', table_name='sustainability_goals', schema='personalization')
    op.drop_index(op.f('ix_personalization_sustainability_goals_user_id'), table_name='sustainability_goals', schema='personalization')
    op.drop_table('sustainability_goals', schema='personalization')
    op.drop_index(op.f('ix_personalization_user_preference_profiles_user_id'), table_name='user_preference_profiles', schema='personalization')
    op.drop_table('user_preference_profiles', schema='personalization')
