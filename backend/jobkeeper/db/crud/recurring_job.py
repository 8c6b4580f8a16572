from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import RecurringJob, RecurringJobExecution, RecurringJobStatus


async def get_job_by_name(session: AsyncSession, name: str) -> RecurringJob | None:
    """Get recurring job by name."""
    result = await session.scalars(select(RecurringJob).where(RecurringJob.name == name))
    return result.first()


async def get_job_by_id(
    session: AsyncSession, job_id: int, for_update: bool = False
) -> RecurringJob | None:
    """Get recurring job by ID, optionally locking the row for the transaction."""
    query = select(RecurringJob).where(RecurringJob.id == job_id)
    if for_update:
        query = query.with_for_update()
    result = await session.scalars(query)
    return result.first()


async def name_taken(
    session: AsyncSession, name: str, exclude_id: Optional[int] = None
) -> bool:
    """Check whether another job already uses ``name``."""
    query = select(RecurringJob.id).where(RecurringJob.name == name)
    if exclude_id is not None:
        query = query.where(RecurringJob.id != exclude_id)
    result = await session.scalars(query.limit(1))
    return result.first() is not None


async def list_jobs(
    session: AsyncSession, statuses: Optional[Sequence[RecurringJobStatus]] = None
) -> list[RecurringJob]:
    """List jobs ordered by name, optionally filtered by status."""
    query = select(RecurringJob)
    if statuses:
        query = query.where(RecurringJob.status.in_(statuses))
    result = await session.scalars(query.order_by(RecurringJob.name))
    return list(result.all())


async def delete_job(session: AsyncSession, job_id: int) -> None:
    """Hard-delete a job, detaching its execution history first."""
    await session.execute(
        update(RecurringJobExecution)
        .where(RecurringJobExecution.recurring_job_id == job_id)
        .values(recurring_job_id=None)
    )
    await session.execute(delete(RecurringJob).where(RecurringJob.id == job_id))


async def get_execution(
    session: AsyncSession, execution_id: int
) -> RecurringJobExecution | None:
    """Get execution record by ID."""
    return await session.get(RecurringJobExecution, execution_id)


async def list_executions(
    session: AsyncSession,
    job_id: Optional[int] = None,
    success: Optional[bool] = None,
    limit: int = 50,
) -> list[RecurringJobExecution]:
    """List execution records, newest first."""
    query = select(RecurringJobExecution)
    if job_id is not None:
        query = query.where(RecurringJobExecution.recurring_job_id == job_id)
    if success is not None:
        query = query.where(RecurringJobExecution.success == success)
    query = query.order_by(
        RecurringJobExecution.started_at.desc(), RecurringJobExecution.id.desc()
    ).limit(limit)
    result = await session.scalars(query)
    return list(result.all())
