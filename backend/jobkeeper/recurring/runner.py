"""
Execution runner - runs a single invocation of a recurring job.
"""

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db.crud.recurring_job import get_job_by_id
from ..logger import logger
from ..models import (
    ExecutionTrigger,
    RecurringJobExecution,
    RecurringJobStatus,
)
from .errors import InvalidFunctionError
from .types import ExecutionContext, ExecutionOutcome, FunctionRegistration

if TYPE_CHECKING:
    from .manager import TaskManager


class JobRunner:
    """
    Executes one job invocation with ordering and idempotence guards.

    The precondition checks (job still exists, still active, run budget left,
    not already executing) run under the manager lock; the job function
    itself runs outside it so a slow job never blocks administrative
    operations.
    """

    def __init__(self, manager: "TaskManager", execution_timeout: float):
        self.manager = manager
        self.execution_timeout = execution_timeout

    async def run(
        self, job_id: int, trigger: ExecutionTrigger = ExecutionTrigger.SCHEDULE
    ) -> Optional[ExecutionOutcome]:
        """
        Run job ``job_id`` once, if its current persisted state allows it.

        Returns:
            The outcome, or None when the invocation was skipped
        """
        admitted = await self._admit(job_id)
        if admitted is None:
            return None

        job_name, function_name, args, registration = admitted
        try:
            return await self._execute(
                job_id, job_name, function_name, args, registration, trigger
            )
        finally:
            self.manager._in_flight.discard(job_id)

    async def _admit(
        self, job_id: int
    ) -> Optional[tuple[str, str, bytes, Optional[FunctionRegistration]]]:
        manager = self.manager
        async with manager._lock:
            if not manager._accepting:
                logger.info(f"Scheduler is stopping, not running job {job_id}")
                return None

            async with manager.session_factory() as session:
                try:
                    job = await get_job_by_id(session, job_id)
                except SQLAlchemyError:
                    logger.exception(f"Failed to load job {job_id} before execution")
                    return None

                if job is None:
                    logger.warning(f"Job {job_id} no longer exists, skipping execution")
                    manager._unschedule_locked(job_id)
                    return None

                if job.status != RecurringJobStatus.ACTIVE:
                    logger.info(
                        f"Job {job.name} is {job.status.value}, skipping execution"
                    )
                    return None

                if job.budget_exhausted():
                    logger.info(
                        f"Job {job.name} reached its run limit "
                        f"({job.times_run}/{job.times}), marking completed"
                    )
                    job.status = RecurringJobStatus.COMPLETED
                    job.next_run_at = None
                    await session.commit()
                    manager._unschedule_locked(job_id)
                    return None

                if job_id in manager._in_flight:
                    logger.warning(
                        f"Job {job.name} is already executing, skipping overlapping run"
                    )
                    return None

                manager._in_flight.add(job_id)
                return (
                    job.name,
                    job.function_name,
                    job.args_bytes,
                    manager.registry.get(job.function_name),
                )

    async def _execute(
        self,
        job_id: int,
        job_name: str,
        function_name: str,
        args: bytes,
        registration: Optional[FunctionRegistration],
        trigger: ExecutionTrigger,
    ) -> Optional[ExecutionOutcome]:
        started_at = datetime.now(timezone.utc)
        execution = RecurringJobExecution(
            recurring_job_id=job_id,
            job_name=job_name,
            trigger=trigger,
            started_at=started_at,
        )
        async with self.manager.session_factory() as session:
            async with session.begin():
                # The job may have been removed since admission
                if await get_job_by_id(session, job_id) is None:
                    logger.warning(
                        f"Job {job_name} was removed before it started, skipping execution"
                    )
                    return None
                session.add(execution)

        context = ExecutionContext(
            job_id=job_id,
            job_name=job_name,
            execution_id=execution.id,
            trigger=trigger,
            args=args,
            started_at=started_at,
            timeout_seconds=self.execution_timeout,
        )
        logger.info(
            f"Executing job {job_name} (execution {execution.id}, trigger={trigger.value})"
        )

        deadline = asyncio.timeout(self.execution_timeout)
        try:
            if registration is None:
                raise InvalidFunctionError(function_name)
            async with deadline:
                await registration.function(context)
        except asyncio.CancelledError:
            context.warning("Execution was cancelled")
            await self._complete(execution, context, False, "Execution was cancelled")
            raise
        except Exception as e:
            if isinstance(e, TimeoutError) and deadline.expired():
                error = f"Execution timed out after {self.execution_timeout:g} seconds"
                context.error(error)
            else:
                error = str(e) or type(e).__name__
                logger.warning(f"Job {job_name} failed: {type(e).__name__}: {e}")
            return await self._complete(execution, context, False, error)

        return await self._complete(execution, context, True, "")

    async def _complete(
        self,
        execution: RecurringJobExecution,
        context: ExecutionContext,
        success: bool,
        error: str,
    ) -> ExecutionOutcome:
        finished_at = datetime.now(timezone.utc)
        duration_ms = int((finished_at - execution.started_at).total_seconds() * 1000)

        async with self.manager.session_factory() as session:
            execution.finished_at = finished_at
            execution.duration = duration_ms
            execution.success = success
            execution.error = error
            execution.output = context.output
            session.add(execution)
            await session.commit()

        await self._record_outcome(context.job_id, execution.started_at, success, error)

        return ExecutionOutcome(
            execution_id=execution.id,
            success=success,
            error=error,
            duration_ms=duration_ms,
        )

    async def _record_outcome(
        self, job_id: int, started_at: datetime, success: bool, error: str
    ) -> None:
        """Fold one execution into the job's counters within a single transaction."""
        manager = self.manager
        async with manager.session_factory() as session:
            async with session.begin():
                job = await get_job_by_id(session, job_id, for_update=True)
                if job is None:
                    logger.warning(
                        f"Job {job_id} was removed while executing, counters not updated"
                    )
                    return

                job.times_run += 1
                job.last_run_at = started_at
                if not success:
                    job.error_count += 1
                    job.last_error = error
                job.next_run_at = manager._live_next_run_time(job_id)

                # A job paused during its last run still completes
                completed = job.budget_exhausted()
                if completed:
                    job.status = RecurringJobStatus.COMPLETED
                    job.next_run_at = None
                job_name, job_key = job.name, job.job_key

        if completed:
            logger.info(f"Job {job_name} reached its run limit, marking completed")
            async with manager._lock:
                manager._unschedule_locked(job_id, job_key=job_key)
