"""initial_schema

Revision ID: 000000000000
Revises: 
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '000000000000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _created_at() -> sa.Column:
    return sa.Column(
        'created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'),
        nullable=False, comment='Timestamp when record was created'
    )


def upgrade() -> None:
    # Create units table
    op.create_table(
        'units',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('urn', sa.String(length=32), nullable=False, comment='Unique reference number'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('district', sa.String(length=100), nullable=False),
        sa.Column('service_no', sa.String(length=32), nullable=False, comment='Service connection number'),
        sa.Column('risk_score', sa.Float(), nullable=False),
        sa.Column('tier', sa.String(length=10), nullable=False, comment='Risk tier (GREEN, AMBER, RED)'),
        sa.Column('kwh_consumption', JSONType, nullable=True, comment='Monthly consumption readings in kWh, oldest first'),
        sa.Column('arrears', sa.Float(), nullable=True, comment='Outstanding balance'),
        sa.Column('disconnect_flag', sa.Boolean(), nullable=False),
        sa.Column('peer_percentile', sa.Float(), nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='Timestamp of the last ingestion update'),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='Timestamp when record was last updated'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('urn'),
        sa.CheckConstraint('risk_score >= 0 AND risk_score <= 100', name='check_unit_risk_score_range'),
        sa.CheckConstraint("tier IN ('GREEN', 'AMBER', 'RED')", name='check_unit_tier')
    )
    op.create_index(op.f('ix_units_district'), 'units', ['district'], unique=False)
    op.create_index(op.f('ix_units_tier'), 'units', ['tier'], unique=False)
    op.create_index(op.f('ix_units_last_updated'), 'units', ['last_updated'], unique=False)
    op.create_index('idx_units_tier_score', 'units', ['tier', 'risk_score'], unique=False)

    # Create shap_drivers table
    op.create_table(
        'shap_drivers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('feature', sa.String(length=100), nullable=False),
        sa.Column('impact', sa.Float(), nullable=False, comment='Signed contribution'),
        sa.Column('value', sa.String(length=255), nullable=False, comment='Observed value'),
        sa.Column('position', sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_shap_drivers_unit_id'), 'shap_drivers', ['unit_id'], unique=False)
    op.create_index(op.f('ix_shap_drivers_created_at'), 'shap_drivers', ['created_at'], unique=False)

    # Create alert_history table
    op.create_table(
        'alert_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('severity', sa.String(length=10), nullable=False, comment='Tier label'),
        sa.Column('message', sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_alert_history_unit_id'), 'alert_history', ['unit_id'], unique=False)
    op.create_index(op.f('ix_alert_history_created_at'), 'alert_history', ['created_at'], unique=False)

    # Create district_stats table
    op.create_table(
        'district_stats',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('total_units', sa.Integer(), nullable=True),
        sa.Column('red_count', sa.Integer(), nullable=True),
        sa.Column('amber_count', sa.Integer(), nullable=True),
        sa.Column('green_count', sa.Integer(), nullable=True),
        sa.Column('avg_risk_score', sa.Float(), nullable=True),
        sa.Column('sla_compliance', sa.Float(), nullable=True, comment='SLA compliance percentage (0-100)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    # Create reports table
    op.create_table(
        'reports',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('report_type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('filters', JSONType, nullable=True),
        sa.Column('data', JSONType, nullable=True),
        sa.Column('generated_by', sa.String(length=64), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('file_url', sa.String(length=512), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('generating', 'ready', 'failed')", name='check_report_status')
    )
    op.create_index(op.f('ix_reports_status'), 'reports', ['status'], unique=False)
    op.create_index(op.f('ix_reports_generated_by'), 'reports', ['generated_by'], unique=False)
    op.create_index(op.f('ix_reports_created_at'), 'reports', ['created_at'], unique=False)

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('severity', sa.String(length=10), nullable=False),
        sa.Column('metadata', JSONType, nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_email', sa.Boolean(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)
    op.create_index(op.f('ix_notifications_created_at'), 'notifications', ['created_at'], unique=False)
    op.create_index('idx_notifications_user_unread', 'notifications', ['user_id', 'read_at'], unique=False)

    # Create profiles table
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('district_access', JSONType, nullable=True, comment='Districts visible to the user; empty means all'),
        sa.Column('email_notifications', sa.Boolean(), nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False, comment='Timestamp when record was last updated'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create files table
    op.create_table(
        'files',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('bucket_id', sa.String(length=64), nullable=False),
        sa.Column('file_path', sa.String(length=512), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tags', JSONType, nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_files_user_id'), 'files', ['user_id'], unique=False)
    op.create_index(op.f('ix_files_created_at'), 'files', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_files_created_at'), table_name='files')
    op.drop_index(op.f('ix_files_user_id'), table_name='files')
    op.drop_table('files')
    op.drop_table('profiles')
    op.drop_index('idx_notifications_user_unread', table_name='notifications')
    op.drop_index(op.f('ix_notifications_created_at'), table_name='notifications')
    op.drop_index(op.f('ix_notifications_user_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index(op.f('ix_reports_created_at'), table_name='reports')
    op.drop_index(op.f('ix_reports_generated_by'), table_name='reports')
    op.drop_index(op.f('ix_reports_status'), table_name='reports')
    op.drop_table('reports')
    op.drop_table('district_stats')
    op.drop_index(op.f('ix_alert_history_created_at'), table_name='alert_history')
    op.drop_index(op.f('ix_alert_history_unit_id'), table_name='alert_history')
    op.drop_table('alert_history')
    op.drop_index(op.f('ix_shap_drivers_created_at'), table_name='shap_drivers')
    op.drop_index(op.f('ix_shap_drivers_unit_id'), table_name='shap_drivers')
    op.drop_table('shap_drivers')
    op.drop_index('idx_units_tier_score', table_name='units')
    op.drop_index(op.f('ix_units_last_updated'), table_name='units')
    op.drop_index(op.f('ix_units_tier'), table_name='units')
    op.drop_index(op.f('ix_units_district'), table_name='units')
    op.drop_table('units')
