from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import SchedulerSettings
from .jobs import register_builtin_jobs
from .manager import TaskManager
from .registry import FunctionRegistry


def create_function_registry() -> FunctionRegistry:
    """Registry populated with the built-in job functions."""
    registry = FunctionRegistry()
    register_builtin_jobs(registry)
    return registry


def create_task_manager(
    session_factory: async_sessionmaker[AsyncSession],
    scheduler_settings: SchedulerSettings,
    registry: FunctionRegistry | None = None,
) -> TaskManager:
    return TaskManager(
        session_factory,
        registry if registry is not None else create_function_registry(),
        scheduler_settings,
    )
