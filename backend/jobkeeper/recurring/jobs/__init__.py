"""
Built-in job functions available in every deployment.
"""

from ..registry import FunctionRegistry
from .samples import fail_job, log_job, test_job


def register_builtin_jobs(registry: FunctionRegistry) -> None:
    registry.register_function(
        "log", log_job, description="Write the given message to the execution output"
    )
    registry.register_function(
        "test", test_job, description="Simulate a two second job"
    )
    registry.register_function("fail", fail_job, description="Always fails")


__all__ = ["register_builtin_jobs", "log_job", "test_job", "fail_job"]
