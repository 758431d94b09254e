"""add_unit_analysis_and_activity_log

Store per-unit analysis results and the user activity audit trail.

Changes:
- Create ai_analysis table (one row per requested unit analysis)
- Create user_activities table (audit trail, optionally tied to a unit)

Revision ID: 3b7d2e91c4a8
Revises: 000000000000
Create Date: 2026-10-19 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b7d2e91c4a8'
down_revision: Union[str, Sequence[str], None] = '000000000000'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _created_at() -> sa.Column:
    return sa.Column(
        'created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'),
        nullable=False, comment='Timestamp when record was created'
    )


def upgrade() -> None:
    """Create analysis and activity tables."""

    op.create_table(
        'ai_analysis',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('analysis_type', sa.String(length=50), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('response', sa.Text(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False, comment="'llm' or 'template'"),
        sa.Column('requested_by', sa.String(length=64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'confidence_score >= 0 AND confidence_score <= 1',
            name='check_analysis_confidence_range'
        )
    )
    op.create_index(op.f('ix_ai_analysis_unit_id'), 'ai_analysis', ['unit_id'], unique=False)
    op.create_index(op.f('ix_ai_analysis_created_at'), 'ai_analysis', ['created_at'], unique=False)

    op.create_table(
        'user_activities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', JSONType, nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_activities_user_id'), 'user_activities', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_activities_unit_id'), 'user_activities', ['unit_id'], unique=False)
    op.create_index(op.f('ix_user_activities_created_at'), 'user_activities', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop analysis and activity tables."""
    op.drop_index(op.f('ix_user_activities_created_at'), table_name='user_activities')
    op.drop_index(op.f('ix_user_activities_unit_id'), table_name='user_activities')
    op.drop_index(op.f('ix_user_activities_user_id'), table_name='user_activities')
    op.drop_table('user_activities')

    op.drop_index(op.f('ix_ai_analysis_created_at'), table_name='ai_analysis')
    op.drop_index(op.f('ix_ai_analysis_unit_id'), table_name='ai_analysis')
    op.drop_table('ai_analysis')
