import functools
import gzip
import inspect
import logging
import logging.handlers
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Callable

from .config import settings

logger = logging.getLogger("jobkeeper")
logger.setLevel(logging.DEBUG)
formatter = logging.Formatter(
    "%(asctime)s %(levelname)s [%(module)s:%(funcName)s:%(lineno)d] %(message)s"
)

logs_dir = Path(settings.logs_dir)
logs_dir.mkdir(parents=True, exist_ok=True)


def rotator(source: str, dest: str) -> None:
    """Compress the rolled-over log file and drop the uncompressed copy."""
    with open(source, "rb") as f_in, gzip.open(dest + ".gz", "wb") as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


log_file_handler = logging.handlers.TimedRotatingFileHandler(
    logs_dir / "jobkeeper.log", when="midnight"
)
log_file_handler.setFormatter(formatter)
log_file_handler.rotator = rotator
logger.addHandler(log_file_handler)

log_stream_handler = logging.StreamHandler(sys.stdout)
log_stream_handler.setFormatter(formatter)
logger.addHandler(log_stream_handler)


def _describe_call(
    sig: inspect.Signature, prefix: str, args: tuple, kwargs: dict
) -> str:
    """Render "[a=1, b=2] prefix: " for an error log line."""
    try:
        bound = sig.bind(*args, **kwargs)
        bound.apply_defaults()
        arguments: dict[str, Any] = dict(bound.arguments)
    except TypeError:
        arguments = {}

    shown = {k: v for k, v in arguments.items() if k != "self"}
    rendered = ", ".join(f"{k}={v!r}" for k, v in shown.items())
    head = f"[{rendered}] " if rendered else ""

    if not prefix:
        return head
    try:
        return f"{head}{prefix.format_map(arguments)}: "
    except (KeyError, ValueError, IndexError):
        return f"{head}{prefix}: "


def log_exception[**P, R](
    prefix: str = "",
    default_return: R | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator that logs and swallows any exception raised by the wrapped call.

    Works for both sync and async callables. ``prefix`` may reference the
    call's parameters with ``str.format`` braces, e.g. ``"job {job_id}"``.

    Usage:
        @log_exception("Execution of job {job_id}")
        async def run(self, job_id: int):
            ...
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        sig = inspect.signature(func)

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    logger.error(
                        f"{_describe_call(sig, prefix, args, kwargs)}"
                        f"{type(e).__name__}: {e}",
                        exc_info=True,
                        stacklevel=2,
                    )
                    return default_return  # type: ignore[return-value]

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{_describe_call(sig, prefix, args, kwargs)}"
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                    stacklevel=2,
                )
                return default_return  # type: ignore[return-value]

        return sync_wrapper

    return decorator
