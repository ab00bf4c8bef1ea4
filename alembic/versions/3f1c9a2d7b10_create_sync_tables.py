"""Create sync, webhook and reconciliation tables

Revision ID: 3f1c9a2d7b10
Revises: 
Create Date: 2025-03-01 09:12:44.218310

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2d7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('uuid', sa.String(length=64), nullable=False, comment='ServiceM8 company UUID'),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('contact_info', sa.JSON(), nullable=True, comment='Email and phone'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_clients_uuid'), 'clients', ['uuid'], unique=True)

    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('uuid', sa.String(length=64), nullable=False, comment='ServiceM8 job UUID'),
        sa.Column('company_uuid', sa.String(length=64), nullable=True, comment='Owning ServiceM8 company UUID'),
        sa.Column('status', sa.String(length=50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('scheduled_date', sa.String(length=32), nullable=True, comment='Upstream job date as sent by ServiceM8'),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('quote_sent', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_jobs_uuid'), 'jobs', ['uuid'], unique=True)
    op.create_index(op.f('ix_jobs_company_uuid'), 'jobs', ['company_uuid'], unique=False)
    op.create_index(op.f('ix_jobs_status'), 'jobs', ['status'], unique=False)
    op.create_index('idx_jobs_company_status', 'jobs', ['company_uuid', 'status'], unique=False)

    op.create_table(
        'quotes',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('job_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='pending or approved'),
        sa.Column('approved_at', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_quotes_job_id'), 'quotes', ['job_id'], unique=True)

    op.create_table(
        'job_records',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('job_uuid', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False, comment='activity, attachment or material'),
        sa.Column('uuid', sa.String(length=64), nullable=False, comment='ServiceM8 UUID of the child record'),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('kind', 'uuid', name='uq_job_records_kind_uuid'),
    )
    op.create_index(op.f('ix_job_records_job_id'), 'job_records', ['job_id'], unique=False)
    op.create_index(op.f('ix_job_records_job_uuid'), 'job_records', ['job_uuid'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('actor_user_id', sa.String(length=255), nullable=False, server_default='system'),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('target_type', sa.String(length=50), nullable=False),
        sa.Column('target_id', sa.String(length=255), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_timestamp'), 'audit_logs', ['timestamp'], unique=False)
    op.create_index('idx_audit_action_target', 'audit_logs', ['action', 'target_type', 'target_id'], unique=False)

    op.create_table(
        'reconciliation_logs',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, comment='full, incremental or emergency'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='running, completed or failed'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=True, comment='Run duration in seconds'),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_reconciliation_logs_status'), 'reconciliation_logs', ['status'], unique=False)
    op.create_index(op.f('ix_reconciliation_logs_started_at'), 'reconciliation_logs', ['started_at'], unique=False)

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(length=255), nullable=False, comment='Upstream event id'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='queued, processing, success or failed'),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_webhook_events_status'), 'webhook_events', ['status'], unique=False)
    op.create_index(op.f('ix_webhook_events_created_at'), 'webhook_events', ['created_at'], unique=False)

    op.create_table(
        'system_alerts',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('type', sa.String(length=20), nullable=False, comment='error, warning or info'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_system_alerts_type'), 'system_alerts', ['type'], unique=False)
    op.create_index(op.f('ix_system_alerts_resolved'), 'system_alerts', ['resolved'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_system_alerts_resolved'), table_name='system_alerts')
    op.drop_index(op.f('ix_system_alerts_type'), table_name='system_alerts')
    op.drop_table('system_alerts')
    op.drop_index(op.f('ix_webhook_events_created_at'), table_name='webhook_events')
    op.drop_index(op.f('ix_webhook_events_status'), table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index(op.f('ix_reconciliation_logs_started_at'), table_name='reconciliation_logs')
    op.drop_index(op.f('ix_reconciliation_logs_status'), table_name='reconciliation_logs')
    op.drop_table('reconciliation_logs')
    op.drop_index('idx_audit_action_target', table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_timestamp'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_action'), table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index(op.f('ix_job_records_job_uuid'), table_name='job_records')
    op.drop_index(op.f('ix_job_records_job_id'), table_name='job_records')
    op.drop_table('job_records')
    op.drop_index(op.f('ix_quotes_job_id'), table_name='quotes')
    op.drop_table('quotes')
    op.drop_index('idx_jobs_company_status', table_name='jobs')
    op.drop_index(op.f('ix_jobs_status'), table_name='jobs')
    op.drop_index(op.f('ix_jobs_company_uuid'), table_name='jobs')
    op.drop_index(op.f('ix_jobs_uuid'), table_name='jobs')
    op.drop_table('jobs')
    op.drop_index(op.f('ix_clients_uuid'), table_name='clients')
    op.drop_table('clients')
