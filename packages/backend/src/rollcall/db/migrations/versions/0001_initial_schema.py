"""initial schema: departments, establishments, workers, mappings, attendance

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-12 09:14:02.118204
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    ]


def upgrade() -> None:
    op.create_table(
        'departments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('state', sa.String(100), nullable=False),
        sa.Column('district', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true'),
        *_timestamps(),
    )
    op.create_table(
        'establishments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('department_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('departments.id'), nullable=False),
        sa.Column('code', sa.String(50), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('district', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true'),
        sa.Column('is_approved', sa.Boolean(), server_default='false'),
        *_timestamps(),
    )
    op.create_table(
        'workers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('worker_id', sa.String(50), nullable=False, unique=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=False),
        sa.Column('district', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(20)),
        sa.Column('is_active', sa.Boolean(), server_default='true'),
        *_timestamps(),
    )
    op.create_table(
        'worker_mappings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('worker_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('workers.id'), nullable=False),
        sa.Column('establishment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('establishments.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true'),
        sa.Column('mapped_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('unmapped_at', sa.DateTime(timezone=True)),
    )
    op.create_index(
        'uq_worker_mappings_active_worker', 'worker_mappings', ['worker_id'],
        unique=True, postgresql_where=sa.text('is_active'),
    )

    event_type = postgresql.ENUM('CHECK_IN', 'CHECK_OUT', name='attendance_event_type')
    status = postgresql.ENUM('PRESENT', 'PARTIAL', 'ABSENT', name='attendance_status')

    op.create_table(
        'attendance_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('worker_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('workers.id'), nullable=False),
        sa.Column('establishment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('establishments.id')),
        sa.Column('event_type', event_type, nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('region', sa.String(100), nullable=False),
        sa.Column('meta', postgresql.JSONB()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index(
        'ix_attendance_events_worker_occurred', 'attendance_events', ['worker_id', 'occurred_at'],
    )
    op.create_table(
        'attendance_daily_rollups',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('worker_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('workers.id'), nullable=False),
        sa.Column('establishment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('establishments.id')),
        sa.Column('attendance_date', sa.Date(), nullable=False),
        sa.Column('status', status, nullable=False),
        sa.Column('first_checkin_at', sa.DateTime(timezone=True)),
        sa.Column('last_checkout_at', sa.DateTime(timezone=True)),
        sa.Column('total_hours', sa.Numeric(5, 2)),
        *_timestamps(),
        sa.UniqueConstraint('worker_id', 'attendance_date', name='uq_rollups_worker_date'),
    )


def downgrade() -> None:
    op.drop_table('attendance_daily_rollups')
    op.drop_index('ix_attendance_events_worker_occurred', table_name='attendance_events')
    op.drop_table('attendance_events')
    op.execute('DROP TYPE IF EXISTS attendance_status')
    op.execute('DROP TYPE IF EXISTS attendance_event_type')
    op.drop_index('uq_worker_mappings_active_worker', table_name='worker_mappings')
    op.drop_table('worker_mappings')
    op.drop_table('workers')
    op.drop_table('establishments')
    op.drop_table('departments')
