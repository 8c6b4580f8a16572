"""Create recurring job tables

Revision ID: 3b9e61c0d4a2
Revises:
Create Date: 2026-10-18 10:12:37.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3b9e61c0d4a2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('recurring_jobs',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('job_key', sa.String(length=255), nullable=False),
    sa.Column('function_name', sa.String(length=255), nullable=False),
    sa.Column('cron_expression', sa.String(length=100), nullable=False),
    sa.Column('args', sa.TEXT(), nullable=False),
    sa.Column('times', sa.Integer(), nullable=False),
    sa.Column('times_run', sa.Integer(), nullable=False),
    sa.Column('status', sa.Enum('ACTIVE', 'PAUSED', 'COMPLETED', 'ERROR', name='recurringjobstatus'), nullable=False),
    sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('error_count', sa.Integer(), nullable=False),
    sa.Column('last_error', sa.TEXT(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_recurring_jobs_name'), 'recurring_jobs', ['name'], unique=True)

    op.create_table('recurring_job_executions',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('recurring_job_id', sa.Integer(), nullable=True),
    sa.Column('job_name', sa.String(length=255), nullable=False),
    sa.Column('trigger', sa.Enum('SCHEDULE', 'MANUAL', name='executiontrigger'), nullable=False),
    sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('success', sa.Boolean(), nullable=False),
    sa.Column('error', sa.TEXT(), nullable=False),
    sa.Column('output', sa.TEXT(), nullable=False),
    sa.Column('duration', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['recurring_job_id'], ['recurring_jobs.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_recurring_job_executions_recurring_job_id'), 'recurring_job_executions', ['recurring_job_id'], unique=False)
    op.create_index(op.f('ix_recurring_job_executions_started_at'), 'recurring_job_executions', ['started_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_recurring_job_executions_started_at'), table_name='recurring_job_executions')
    op.drop_index(op.f('ix_recurring_job_executions_recurring_job_id'), table_name='recurring_job_executions')
    op.drop_table('recurring_job_executions')
    op.drop_index(op.f('ix_recurring_jobs_name'), table_name='recurring_jobs')
    op.drop_table('recurring_jobs')
