"""
Function registry mapping function names to job logic.
"""

from typing import Dict, Optional

from ..logger import logger
from .types import AsyncJobFunction, FunctionRegistration


class FunctionRegistry:
    """
    Registry of job functions that recurring jobs can be bound to.

    Registering an existing name replaces the previous function. There is no
    removal; jobs referencing a name that was never registered fail to
    schedule.
    """

    def __init__(self):
        # function name -> FunctionRegistration
        self._functions: Dict[str, FunctionRegistration] = {}

    def register_function(
        self, name: str, function: AsyncJobFunction, description: str = ""
    ) -> None:
        """
        Register ``function`` under ``name``.

        Args:
            name: Name jobs use to refer to the function
            function: Async callable taking an ExecutionContext
            description: Human-readable description
        """
        if name in self._functions:
            logger.warning(f"Job function '{name}' re-registered, replacing it")
        self._functions[name] = FunctionRegistration(
            function=function, description=description
        )

    def register(self, name: Optional[str] = None, description: str = ""):
        """
        Decorator form of :meth:`register_function`.

        Example:
            ```python
            @registry.register("cleanup", description="Purge stale rows")
            async def cleanup(context: ExecutionContext):
                days = context.load_args(default=30)
                context.info("Purging rows older than %d days", days)
            ```
        """

        def decorator(func: AsyncJobFunction) -> AsyncJobFunction:
            self.register_function(name or func.__name__, func, description)
            return func

        return decorator

    def get(self, name: str) -> Optional[FunctionRegistration]:
        return self._functions.get(name)

    def is_registered(self, name: str) -> bool:
        return name in self._functions

    def get_all(self) -> Dict[str, FunctionRegistration]:
        return self._functions.copy()
