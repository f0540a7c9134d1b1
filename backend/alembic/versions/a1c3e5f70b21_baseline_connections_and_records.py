"""baseline: users, connections, consultations, medical_records, notification_outbox

Revision ID: a1c3e5f70b21
Revises:
Create Date: 2026-10-18 09:12:31.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f70b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Skip tables that Base.metadata.create_all() may already have created
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing = set(inspector.get_table_names())

    if 'users' not in existing:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('email', sa.String(255), nullable=False, unique=True),
            sa.Column('full_name', sa.String(255), nullable=False),
            sa.Column('role', sa.String(20), nullable=False),
            sa.Column('specialty', sa.String(255), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index('ix_users_id', 'users', ['id'])
        op.create_index('idx_users_role', 'users', ['role'])

    if 'connections' not in existing:
        op.create_table(
            'connections',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('patient_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('access_level', sa.String(16), nullable=False, server_default='limited'),
            sa.Column('full_access_status', sa.String(16), nullable=False, server_default='none'),
            sa.Column('initiated_by_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('patient_notified', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('patient_notified_at', sa.TIMESTAMP(timezone=True), nullable=True),
            sa.Column('full_access_status_updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            *_timestamps(),
            sa.CheckConstraint(
                "access_level <> 'full' OR full_access_status = 'approved'",
                name='ck_connections_full_requires_approval',
            ),
            sa.CheckConstraint(
                "full_access_status <> 'pending' OR access_level = 'limited'",
                name='ck_connections_pending_is_limited',
            ),
        )
        op.create_index('ix_connections_id', 'connections', ['id'])
        op.create_index('uq_connections_patient_provider', 'connections', ['patient_id', 'provider_id'], unique=True)
        op.create_index('idx_connections_patient_access', 'connections', ['patient_id', 'access_level'])
        op.create_index('idx_connections_provider_access', 'connections', ['provider_id', 'access_level'])
        op.create_index('idx_connections_patient_status', 'connections', ['patient_id', 'full_access_status'])
        op.create_index('idx_connections_provider_status', 'connections', ['provider_id', 'full_access_status'])

    if 'consultations' not in existing:
        op.create_table(
            'consultations',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('patient_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('date', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('specialty', sa.String(255), nullable=True),
            sa.Column('reason_for_visit', sa.Text(), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
            sa.Column('last_updated', sa.TIMESTAMP(timezone=True), nullable=True),
            sa.Column('archived_at', sa.TIMESTAMP(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_consultations_id', 'consultations', ['id'])
        op.create_index('idx_consultations_patient', 'consultations', ['patient_id'])
        op.create_index('idx_consultations_provider', 'consultations', ['provider_id'])
        op.create_index('idx_consultations_patient_date', 'consultations', ['patient_id', 'date'])

    if 'medical_records' not in existing:
        op.create_table(
            'medical_records',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('record_type', sa.String(32), nullable=False),
            sa.Column('patient_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('consultation_id', sa.Integer(), sa.ForeignKey('consultations.id', ondelete='SET NULL'), nullable=True),
            sa.Column('date', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('data', sa.JSON(), nullable=False),
            sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_medical_records_id', 'medical_records', ['id'])
        op.create_index('idx_medical_records_patient', 'medical_records', ['patient_id'])
        op.create_index('idx_medical_records_provider', 'medical_records', ['provider_id'])
        op.create_index('idx_medical_records_consultation', 'medical_records', ['consultation_id'])
        op.create_index('idx_medical_records_deleted', 'medical_records', ['patient_id', 'record_type', 'is_deleted'])

    if 'notification_outbox' not in existing:
        op.create_table(
            'notification_outbox',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('event_type', sa.String(50), nullable=False),
            sa.Column('connection_id', sa.Integer(), nullable=False),
            sa.Column('recipient_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
            sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
            sa.Column('next_attempt_at', sa.TIMESTAMP(timezone=True), nullable=False),
            sa.Column('last_error', sa.Text(), nullable=True),
            sa.Column('sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index('ix_notification_outbox_id', 'notification_outbox', ['id'])
        op.create_index('idx_notification_outbox_due', 'notification_outbox', ['status', 'next_attempt_at'])
        op.create_index('idx_notification_outbox_connection', 'notification_outbox', ['connection_id'])


def downgrade() -> None:
    op.drop_table('notification_outbox')
    op.drop_table('medical_records')
    op.drop_table('consultations')
    op.drop_table('connections')
    op.drop_table('users')
