"""
Recurring job scheduler.

Job functions are registered by name in a FunctionRegistry; the TaskManager
persists job definitions, turns them into live cron timers and records every
execution.
"""

from .bootstrap import create_function_registry, create_task_manager
from .errors import (
    DuplicateNameError,
    InvalidFunctionError,
    InvalidScheduleError,
    InvalidStateError,
    JobNotFoundError,
    JobSchedulingError,
    RecurringJobError,
)
from .manager import TaskManager, encode_args
from .registry import FunctionRegistry
from .runner import JobRunner
from .schedule import parse_cron_expression, preview_fire_times, validate_cron_expression
from .types import (
    AsyncJobFunction,
    ExecutionContext,
    ExecutionOutcome,
    FunctionRegistration,
    OutputLine,
    parse_output_lines,
)

__all__ = [
    "AsyncJobFunction",
    "DuplicateNameError",
    "ExecutionContext",
    "ExecutionOutcome",
    "FunctionRegistration",
    "FunctionRegistry",
    "InvalidFunctionError",
    "InvalidScheduleError",
    "InvalidStateError",
    "JobNotFoundError",
    "JobRunner",
    "JobSchedulingError",
    "OutputLine",
    "RecurringJobError",
    "TaskManager",
    "create_function_registry",
    "create_task_manager",
    "encode_args",
    "parse_cron_expression",
    "parse_output_lines",
    "preview_fire_times",
    "validate_cron_expression",
]
