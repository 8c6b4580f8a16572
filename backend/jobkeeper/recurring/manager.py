"""
Task Manager - owns the live schedule of recurring jobs and reconciles it
against the persistent store.
"""

import asyncio
import json
import secrets
from datetime import datetime
from typing import Any, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import SchedulerSettings
from ..db.crud import recurring_job as crud
from ..logger import log_exception, logger
from ..models import (
    ExecutionTrigger,
    RecurringJob,
    RecurringJobExecution,
    RecurringJobStatus,
)
from .errors import (
    DuplicateNameError,
    InvalidFunctionError,
    InvalidStateError,
    JobNotFoundError,
    JobSchedulingError,
)
from .registry import FunctionRegistry
from .runner import JobRunner
from .schedule import parse_cron_expression
from .types import ExecutionOutcome, LiveTimer


def encode_args(args: Any) -> str:
    """Serialize job arguments for storage; bytes are stored verbatim."""
    if args is None:
        return ""
    if isinstance(args, (bytes, bytearray)):
        return bytes(args).decode("utf-8")
    return json.dumps(args, ensure_ascii=False)


class TaskManager:
    """
    Scheduler core for recurring jobs.

    Converts persisted job definitions into live APScheduler timers, launches
    executions through the JobRunner and keeps job status in step with the
    store. A single asyncio lock linearizes every mutation of the live-timer
    map and of job configuration; it is never held while a job function runs.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: FunctionRegistry,
        scheduler_settings: Optional[SchedulerSettings] = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.settings = scheduler_settings or SchedulerSettings()
        self.scheduler = AsyncIOScheduler(timezone=self.settings.timezone)
        self.runner = JobRunner(self, self.settings.execution_timeout_seconds)

        self._lock = asyncio.Lock()
        # job id -> live timer
        self._live: dict[int, LiveTimer] = {}
        self._in_flight: set[int] = set()
        self._executions: set[asyncio.Task] = set()
        self._running = False
        self._accepting = True

    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start dispatching timers and schedule every active job in the store.

        A job that fails to schedule is logged and marked as errored; it does
        not prevent the others from starting.
        """
        if self._running:
            return

        async with self._lock:
            self.scheduler = AsyncIOScheduler(timezone=self.settings.timezone)
            self.scheduler.start()
            self._accepting = True
            self._running = True

            async with self.session_factory() as session:
                active_jobs = await crud.list_jobs(session, [RecurringJobStatus.ACTIVE])
                for job in active_jobs:
                    try:
                        self._schedule_locked(job)
                    except Exception as e:
                        logger.error(f"Failed to recover recurring job {job.name}: {e}")
                        job.status = RecurringJobStatus.ERROR
                        job.last_error = str(e)
                        job.next_run_at = None
                await session.commit()

        logger.info(f"Recurring job manager started with {len(self._live)} live jobs")

    async def stop(self) -> None:
        """
        Stop dispatching, drop every live timer and wait briefly for in-flight
        executions; whatever is still running after the grace period is
        cancelled and recorded as failed.
        """
        if not self._running:
            return

        logger.info("Stopping recurring job manager...")
        async with self._lock:
            self._accepting = False
            self.scheduler.remove_all_jobs()
            self.scheduler.shutdown(wait=False)
            self._live.clear()
            self._running = False

        pending = set(self._executions)
        if pending:
            _, still_running = await asyncio.wait(
                pending, timeout=self.settings.shutdown_grace_seconds
            )
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
        logger.info("Recurring job manager stopped")

    async def add_job(
        self,
        name: str,
        function_name: str,
        args: Any = None,
        times: int = 0,
        cron_expression: str = "",
    ) -> RecurringJob:
        """
        Create a recurring job and schedule it.

        Args:
            name: Unique job name
            function_name: Registered function to run
            args: Arguments passed to the function as a JSON blob
            times: Maximum number of runs, 0 for unlimited
            cron_expression: When to run

        Raises:
            DuplicateNameError: If the name is taken
            InvalidFunctionError: If the function is not registered
            InvalidScheduleError: If the cron expression is malformed
            JobSchedulingError: If the job was stored but could not be scheduled
        """
        if times < 0:
            raise ValueError("times must be zero (unlimited) or positive")

        async with self._lock:
            async with self.session_factory() as session:
                if await crud.name_taken(session, name):
                    raise DuplicateNameError(name)
                if not self.registry.is_registered(function_name):
                    raise InvalidFunctionError(function_name)
                parse_cron_expression(cron_expression, self.settings.timezone)

                job = RecurringJob(
                    name=name,
                    job_key="",
                    function_name=function_name,
                    cron_expression=cron_expression,
                    args=encode_args(args),
                    times=times,
                    times_run=0,
                    error_count=0,
                    last_error="",
                    status=RecurringJobStatus.ACTIVE,
                )
                session.add(job)
                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise DuplicateNameError(name) from e

                logger.info(f"Recurring job {name} created (function={function_name})")
                if self._running:
                    await self._schedule_or_mark_error(session, job)
                return job

    async def update_job(
        self,
        job_id: int,
        name: str,
        function_name: str,
        args: Any = None,
        times: int = 0,
        cron_expression: str = "",
        keep_status: bool = False,
    ) -> RecurringJob:
        """
        Rewrite a job's configuration and reschedule it.

        Execution counters (times_run, error_count, last_error, last_run_at)
        are preserved. Unless ``keep_status`` is set, a completed or errored
        job goes back to active.
        """
        if times < 0:
            raise ValueError("times must be zero (unlimited) or positive")

        async with self._lock:
            async with self.session_factory() as session:
                job = await crud.get_job_by_id(session, job_id)
                if job is None:
                    raise JobNotFoundError(job_id)
                if name != job.name and await crud.name_taken(
                    session, name, exclude_id=job_id
                ):
                    raise DuplicateNameError(name)
                if not self.registry.is_registered(function_name):
                    raise InvalidFunctionError(function_name)
                parse_cron_expression(cron_expression, self.settings.timezone)

                job.name = name
                job.function_name = function_name
                job.cron_expression = cron_expression
                job.args = encode_args(args)
                job.times = times
                job.next_run_at = None
                if not keep_status and job.status in (
                    RecurringJobStatus.COMPLETED,
                    RecurringJobStatus.ERROR,
                ):
                    job.status = RecurringJobStatus.ACTIVE

                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise DuplicateNameError(name) from e

                self._unschedule_locked(job_id)
                logger.info(f"Recurring job {name} updated (status={job.status.value})")
                if job.status == RecurringJobStatus.ACTIVE and self._running:
                    await self._schedule_or_mark_error(session, job)
                return job

    async def remove_job(self, name: str) -> None:
        """Unschedule and permanently delete a job. Its history is kept, detached."""
        async with self._lock:
            async with self.session_factory() as session:
                job = await self._get_job_or_raise(session, name)
                self._unschedule_locked(job.id)
                await crud.delete_job(session, job.id)
                await session.commit()
        logger.info(f"Recurring job {name} removed")

    async def pause_job(self, name: str) -> None:
        """
        Pause an active job.

        Raises:
            InvalidStateError: If the job is not active
        """
        async with self._lock:
            async with self.session_factory() as session:
                job = await self._get_job_or_raise(session, name)
                if job.status != RecurringJobStatus.ACTIVE:
                    raise InvalidStateError(
                        f"Recurring job {name} is {job.status.value} and cannot be paused",
                        job.status,
                    )
                self._unschedule_locked(job.id)
                job.status = RecurringJobStatus.PAUSED
                job.next_run_at = None
                await session.commit()
        logger.info(f"Recurring job {name} paused")

    async def resume_job(self, name: str) -> None:
        """
        Resume a paused job.

        Raises:
            InvalidStateError: If the job is not paused
            JobSchedulingError: If the job could not be rescheduled
        """
        async with self._lock:
            async with self.session_factory() as session:
                job = await self._get_job_or_raise(session, name)
                if job.status != RecurringJobStatus.PAUSED:
                    raise InvalidStateError(
                        f"Recurring job {name} is {job.status.value}, "
                        "only paused jobs can be resumed",
                        job.status,
                    )
                job.status = RecurringJobStatus.ACTIVE
                await session.commit()
                logger.info(f"Recurring job {name} resumed")
                if self._running:
                    await self._schedule_or_mark_error(session, job)

    async def run_job_now(self, name: str) -> asyncio.Task:
        """
        Launch an out-of-band execution of a job.

        The regular timer is untouched. Whether the job actually runs is
        decided by the runner's precondition checks; awaiting the returned
        task yields the outcome, or None if the run was skipped.
        """
        if not self._accepting:
            raise InvalidStateError("Recurring job manager is stopped")
        async with self.session_factory() as session:
            job = await self._get_job_or_raise(session, name)
        logger.info(f"Recurring job {name} triggered manually")
        return self._submit_execution(job.id, ExecutionTrigger.MANUAL)

    async def get_job(self, name: str) -> RecurringJob:
        async with self.session_factory() as session:
            return await self._get_job_or_raise(session, name)

    async def get_job_by_id(self, job_id: int) -> RecurringJob:
        async with self.session_factory() as session:
            job = await crud.get_job_by_id(session, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(
        self, statuses: Optional[Sequence[RecurringJobStatus]] = None
    ) -> List[RecurringJob]:
        async with self.session_factory() as session:
            return await crud.list_jobs(session, statuses)

    async def get_execution_history(
        self, name: str, limit: int = 50
    ) -> List[RecurringJobExecution]:
        """Execution records of a job, newest first."""
        async with self.session_factory() as session:
            job = await self._get_job_or_raise(session, name)
            return await crud.list_executions(session, job_id=job.id, limit=limit)

    async def list_executions(
        self,
        job_id: Optional[int] = None,
        success: Optional[bool] = None,
        limit: int = 50,
    ) -> List[RecurringJobExecution]:
        async with self.session_factory() as session:
            return await crud.list_executions(
                session, job_id=job_id, success=success, limit=limit
            )

    async def get_execution(self, execution_id: int) -> Optional[RecurringJobExecution]:
        async with self.session_factory() as session:
            return await crud.get_execution(session, execution_id)

    async def get_next_run_time(self, name: str) -> Optional[datetime]:
        """Next fire time of the job's live timer, None when it has none."""
        job = await self.get_job(name)
        return self._live_next_run_time(job.id)

    def live_job_ids(self) -> List[int]:
        return list(self._live)

    async def _get_job_or_raise(self, session: AsyncSession, name: str) -> RecurringJob:
        job = await crud.get_job_by_name(session, name)
        if job is None:
            raise JobNotFoundError(name)
        return job

    async def _schedule_or_mark_error(
        self, session: AsyncSession, job: RecurringJob
    ) -> None:
        """Schedule a persisted job; on failure record the error on the row and raise."""
        try:
            self._schedule_locked(job)
        except Exception as e:
            logger.error(f"Failed to schedule recurring job {job.name}: {e}")
            job.status = RecurringJobStatus.ERROR
            job.last_error = str(e)
            job.next_run_at = None
            await session.commit()
            raise JobSchedulingError(job, e) from e
        await session.commit()

    def _schedule_locked(self, job: RecurringJob) -> None:
        """
        Turn a job row into a live timer. Caller holds the lock and commits.

        Mutates ``job``: a fresh ``job_key`` and ``next_run_at``, or
        ``status=completed`` when the run budget is already spent.
        """
        if not self.registry.is_registered(job.function_name):
            raise InvalidFunctionError(job.function_name)
        trigger = parse_cron_expression(job.cron_expression, self.settings.timezone)

        self._unschedule_locked(job.id)

        if job.budget_exhausted():
            logger.info(
                f"Recurring job {job.name} already ran {job.times_run}/{job.times} "
                "times, marking completed"
            )
            job.status = RecurringJobStatus.COMPLETED
            job.next_run_at = None
            return

        job_key = f"recurring_{job.id}_{secrets.token_urlsafe(8)}"
        scheduled = self.scheduler.add_job(
            self._on_timer,
            trigger=trigger,
            args=[job.id],
            id=job_key,
            name=job.name,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=self.settings.misfire_grace_seconds,
        )
        self._live[job.id] = LiveTimer(
            job_key=job_key, job_name=job.name, cron_expression=job.cron_expression
        )
        job.job_key = job_key
        job.next_run_at = scheduled.next_run_time
        logger.debug(f"Recurring job {job.name} scheduled, next run {job.next_run_at}")

    def _unschedule_locked(self, job_id: int, job_key: Optional[str] = None) -> None:
        """
        Drop the live timer of ``job_id``. Caller holds the lock.

        With ``job_key`` given, only a timer carrying that key is dropped, so
        a timer created by a newer reschedule survives.
        """
        live = self._live.get(job_id)
        if live is None or (job_key is not None and live.job_key != job_key):
            return
        del self._live[job_id]
        if self.scheduler.get_job(live.job_key) is not None:
            self.scheduler.remove_job(live.job_key)

    def _live_next_run_time(self, job_id: int) -> Optional[datetime]:
        live = self._live.get(job_id)
        if live is None:
            return None
        scheduled = self.scheduler.get_job(live.job_key)
        return scheduled.next_run_time if scheduled else None

    async def _on_timer(self, job_id: int) -> None:
        """APScheduler callback; only the job id is captured."""
        self._submit_execution(job_id, ExecutionTrigger.SCHEDULE)

    def _submit_execution(self, job_id: int, trigger: ExecutionTrigger) -> asyncio.Task:
        task = asyncio.create_task(
            self._run_execution(job_id, trigger), name=f"recurring-job-{job_id}"
        )
        self._executions.add(task)
        task.add_done_callback(self._executions.discard)
        return task

    @log_exception("Execution of recurring job {job_id}")
    async def _run_execution(
        self, job_id: int, trigger: ExecutionTrigger
    ) -> Optional[ExecutionOutcome]:
        return await self.runner.run(job_id, trigger)
