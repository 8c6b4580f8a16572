"""
Error types raised by the recurring job scheduler.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..models import RecurringJob, RecurringJobStatus


class RecurringJobError(Exception):
    """Base class for every scheduler error."""


class JobNotFoundError(RecurringJobError):
    def __init__(self, job: str | int):
        self.job = job
        super().__init__(f"Recurring job '{job}' not found")


class DuplicateNameError(RecurringJobError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Recurring job name '{name}' is already in use")


class InvalidFunctionError(RecurringJobError):
    def __init__(self, function_name: str):
        self.function_name = function_name
        super().__init__(f"Function '{function_name}' is not registered")


class InvalidScheduleError(RecurringJobError):
    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expression}': {reason}")


class InvalidStateError(RecurringJobError):
    def __init__(self, message: str, status: "RecurringJobStatus | None" = None):
        self.status = status
        super().__init__(message)


class JobSchedulingError(RecurringJobError):
    """
    Scheduling failed after the job row was persisted.

    The row is kept with ``status=error`` and ``last_error`` set so operators
    can see what went wrong; ``job`` is that persisted row.
    """

    def __init__(self, job: "RecurringJob", cause: Exception):
        self.job = job
        self.cause = cause
        super().__init__(f"Failed to schedule recurring job '{job.name}': {cause}")
