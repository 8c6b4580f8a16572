"""
Recurring job management API endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, Field

from ..dependencies import get_task_manager
from ..models import (
    RecurringJobExecutionPublic,
    RecurringJobPublic,
    RecurringJobStatus,
)
from ..recurring import (
    DuplicateNameError,
    InvalidFunctionError,
    InvalidScheduleError,
    InvalidStateError,
    JobNotFoundError,
    OutputLine,
    RecurringJobError,
    TaskManager,
    parse_output_lines,
    preview_fire_times,
)

router = APIRouter(prefix="/recurring", tags=["recurring"])


class CreateRecurringJobRequest(BaseModel):
    """Request model for creating a recurring job."""

    name: str = Field(min_length=1, max_length=255)
    function_name: str
    cron_expression: str
    args: Any = None  # Stored as JSON, decoded by the job function
    times: int = Field(default=0, ge=0)


class UpdateRecurringJobRequest(CreateRecurringJobRequest):
    """Request model for updating a recurring job. The name may change."""

    keep_status: bool = False


class RegisteredFunctionResponse(BaseModel):
    name: str
    description: str


class RecurringJobExecutionDetail(RecurringJobExecutionPublic):
    """Execution record with its output split into leveled lines."""

    lines: List[OutputLine]


class CronPreviewResponse(BaseModel):
    cron_expression: str
    fire_times: List[datetime]


def _to_http_exception(e: RecurringJobError) -> HTTPException:
    if isinstance(e, JobNotFoundError):
        code = http_status.HTTP_404_NOT_FOUND
    elif isinstance(e, (DuplicateNameError, InvalidStateError)):
        code = http_status.HTTP_409_CONFLICT
    elif isinstance(e, (InvalidFunctionError, InvalidScheduleError)):
        code = http_status.HTTP_400_BAD_REQUEST
    else:
        code = http_status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(e))


@router.get("/functions", response_model=List[RegisteredFunctionResponse])
async def list_functions(manager: TaskManager = Depends(get_task_manager)):
    """List all functions recurring jobs can be bound to."""
    return [
        RegisteredFunctionResponse(name=name, description=registration.description)
        for name, registration in sorted(manager.registry.get_all().items())
    ]


@router.get("/cron/preview", response_model=CronPreviewResponse)
async def preview_cron_expression(
    expression: str,
    count: int = Query(5, ge=1, le=50),
    manager: TaskManager = Depends(get_task_manager),
):
    """
    Preview the next fire times of a cron expression.

    Useful to check an expression before creating a job with it.
    """
    try:
        fire_times = preview_fire_times(
            expression, count=count, timezone=manager.settings.timezone
        )
    except RecurringJobError as e:
        raise _to_http_exception(e)
    return CronPreviewResponse(cron_expression=expression, fire_times=fire_times)


@router.get("/jobs", response_model=List[RecurringJobPublic])
async def list_jobs(
    status: Optional[List[RecurringJobStatus]] = Query(
        None, description="Filter by job status (default: all jobs)"
    ),
    manager: TaskManager = Depends(get_task_manager),
):
    """List recurring jobs ordered by name."""
    return await manager.list_jobs(status)


@router.post(
    "/jobs",
    response_model=RecurringJobPublic,
    status_code=http_status.HTTP_201_CREATED,
)
async def create_job(
    request: CreateRecurringJobRequest,
    manager: TaskManager = Depends(get_task_manager),
):
    """
    Create a new recurring job.

    The job is stored and scheduled right away. If scheduling fails after
    the job was stored, the job is kept with status ``error`` and a 500 is
    returned with the recorded error.
    """
    try:
        return await manager.add_job(
            name=request.name,
            function_name=request.function_name,
            args=request.args,
            times=request.times,
            cron_expression=request.cron_expression,
        )
    except RecurringJobError as e:
        raise _to_http_exception(e)


@router.get("/jobs/{name}", response_model=RecurringJobPublic)
async def get_job(name: str, manager: TaskManager = Depends(get_task_manager)):
    try:
        return await manager.get_job(name)
    except RecurringJobError as e:
        raise _to_http_exception(e)


@router.put("/jobs/{name}", response_model=RecurringJobPublic)
async def update_job(
    name: str,
    request: UpdateRecurringJobRequest,
    manager: TaskManager = Depends(get_task_manager),
):
    """
    Replace a job's configuration.

    Run counters are kept. A completed or errored job becomes active again
    unless ``keep_status`` is set.
    """
    try:
        job = await manager.get_job(name)
        return await manager.update_job(
            job.id,
            name=request.name,
            function_name=request.function_name,
            args=request.args,
            times=request.times,
            cron_expression=request.cron_expression,
            keep_status=request.keep_status,
        )
    except RecurringJobError as e:
        raise _to_http_exception(e)


@router.delete("/jobs/{name}")
async def remove_job(name: str, manager: TaskManager = Depends(get_task_manager)):
    """
    Remove a recurring job.

    The job stops running and is deleted; its execution history is kept.
    """
    try:
        await manager.remove_job(name)
    except RecurringJobError as e:
        raise _to_http_exception(e)
    return {"message": f"Recurring job {name} removed"}


@router.post("/jobs/{name}/pause")
async def pause_job(name: str, manager: TaskManager = Depends(get_task_manager)):
    try:
        await manager.pause_job(name)
    except RecurringJobError as e:
        raise _to_http_exception(e)
    return {"message": f"Recurring job {name} paused"}


@router.post("/jobs/{name}/resume")
async def resume_job(name: str, manager: TaskManager = Depends(get_task_manager)):
    try:
        await manager.resume_job(name)
    except RecurringJobError as e:
        raise _to_http_exception(e)
    return {"message": f"Recurring job {name} resumed"}


@router.post("/jobs/{name}/run", status_code=http_status.HTTP_202_ACCEPTED)
async def run_job(name: str, manager: TaskManager = Depends(get_task_manager)):
    """
    Trigger one execution of a job now.

    The execution runs in the background; a paused, completed or errored job
    is skipped and leaves no execution record.
    """
    try:
        await manager.run_job_now(name)
    except RecurringJobError as e:
        raise _to_http_exception(e)
    return {"message": f"Recurring job {name} triggered"}


@router.get(
    "/jobs/{name}/executions", response_model=List[RecurringJobExecutionPublic]
)
async def get_job_executions(
    name: str,
    limit: int = Query(50, ge=1, le=500),
    manager: TaskManager = Depends(get_task_manager),
):
    """Execution history of a job, newest first."""
    try:
        return await manager.get_execution_history(name, limit)
    except RecurringJobError as e:
        raise _to_http_exception(e)


@router.get("/executions", response_model=List[RecurringJobExecutionPublic])
async def list_executions(
    job_id: Optional[int] = Query(None, description="Filter by job id"),
    success: Optional[bool] = Query(None, description="Filter by outcome"),
    limit: int = Query(50, ge=1, le=500),
    manager: TaskManager = Depends(get_task_manager),
):
    return await manager.list_executions(job_id=job_id, success=success, limit=limit)


@router.get("/executions/{execution_id}", response_model=RecurringJobExecutionDetail)
async def get_execution(
    execution_id: int, manager: TaskManager = Depends(get_task_manager)
):
    execution = await manager.get_execution(execution_id)
    if execution is None:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND, detail="Execution not found"
        )
    detail: Dict[str, Any] = RecurringJobExecutionPublic.model_validate(
        execution
    ).model_dump()
    return RecurringJobExecutionDetail(
        **detail, lines=parse_output_lines(execution.output)
    )
