"""create meal analysis and chat tables

Revision ID: 4b1e7c2a9f30
Revises: 
Create Date: 2026-10-19 10:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4b1e7c2a9f30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TextArray = postgresql.ARRAY(sa.Text()).with_variant(sa.JSON(), "sqlite")
JsonDocument = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


def upgrade() -> None:
    op.create_table(
        'meal_analyses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('detected_dishes', TextArray, nullable=False),
        sa.Column('food_items', TextArray, nullable=False),
        sa.Column('calories', sa.Float(), nullable=False),
        sa.Column('portions', JsonDocument, nullable=False),
        sa.Column('nutrients', JsonDocument, nullable=False),
        sa.Column('deficient_nutrients', TextArray, nullable=False),
        sa.Column('excessive_nutrients', TextArray, nullable=False),
        sa.Column('improvements', TextArray, nullable=False),
        sa.Column('image_url', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_meal_analyses_id'), 'meal_analyses', ['id'], unique=False)
    op.create_index(op.f('ix_meal_analyses_user_id'), 'meal_analyses', ['user_id'], unique=False)
    op.create_index(op.f('ix_meal_analyses_created_at'), 'meal_analyses', ['created_at'], unique=False)

    op.create_table(
        'chat_histories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('analysis_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('message_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['analysis_id'], ['meal_analyses.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('analysis_id', 'user_id', name='uq_chat_histories_analysis_user'),
    )
    op.create_index(op.f('ix_chat_histories_id'), 'chat_histories', ['id'], unique=False)
    op.create_index(op.f('ix_chat_histories_analysis_id'), 'chat_histories', ['analysis_id'], unique=False)
    op.create_index(op.f('ix_chat_histories_user_id'), 'chat_histories', ['user_id'], unique=False)

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('chat_history_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['chat_history_id'], ['chat_histories.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_chat_messages_id'), 'chat_messages', ['id'], unique=False)
    op.create_index(op.f('ix_chat_messages_chat_history_id'), 'chat_messages', ['chat_history_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_chat_messages_chat_history_id'), table_name='chat_messages')
    op.drop_index(op.f('ix_chat_messages_id'), table_name='chat_messages')
    op.drop_table('chat_messages')
    op.drop_index(op.f('ix_chat_histories_user_id'), table_name='chat_histories')
    op.drop_index(op.f('ix_chat_histories_analysis_id'), table_name='chat_histories')
    op.drop_index(op.f('ix_chat_histories_id'), table_name='chat_histories')
    op.drop_table('chat_histories')
    op.drop_index(op.f('ix_meal_analyses_created_at'), table_name='meal_analyses')
    op.drop_index(op.f('ix_meal_analyses_user_id'), table_name='meal_analyses')
    op.drop_index(op.f('ix_meal_analyses_id'), table_name='meal_analyses')
    op.drop_table('meal_analyses')
