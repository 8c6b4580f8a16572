"""
Type definitions for the recurring job system.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import BaseModel, Field

from ..models import ExecutionTrigger

# Type alias for async job functions
AsyncJobFunction = Callable[["ExecutionContext"], Awaitable[None]]

OUTPUT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
OUTPUT_LEVELS = ("INFO", "WARN", "ERROR", "DEBUG")

_OUTPUT_LINE_RE = re.compile(
    r"^\[(?P<timestamp>[^\]]+)\] \[(?P<level>INFO|WARN|ERROR|DEBUG)\] (?P<message>.*)$"
)


@dataclass(frozen=True)
class FunctionRegistration:
    """A registered job function with its metadata."""

    function: AsyncJobFunction
    description: str


@dataclass(frozen=True)
class LiveTimer:
    """In-memory handle of a scheduled job; keyed by job id in the manager."""

    job_key: str
    job_name: str
    cron_expression: str


class ExecutionContext(BaseModel):
    """
    Execution context handed to a job function for one invocation.

    ``args`` is the job's raw argument blob; functions own its decoding.
    The ``info``/``warning``/``error``/``debug`` helpers append timestamped,
    leveled lines that end up in the execution record's ``output``.
    """

    job_id: int
    job_name: str
    execution_id: int
    trigger: ExecutionTrigger
    args: bytes = b""
    started_at: datetime
    timeout_seconds: float
    lines: List[str] = Field(default_factory=list)

    @property
    def deadline(self) -> datetime:
        return self.started_at + timedelta(seconds=self.timeout_seconds)

    @property
    def output(self) -> str:
        return "\n".join(self.lines)

    def load_args(self, default: Any = None) -> Any:
        """Decode ``args`` as JSON, returning ``default`` when empty."""
        if not self.args:
            return default
        return json.loads(self.args)

    def info(self, message: str, *args: Any) -> None:
        self._log("INFO", message, args)

    def warning(self, message: str, *args: Any) -> None:
        self._log("WARN", message, args)

    def error(self, message: str, *args: Any) -> None:
        self._log("ERROR", message, args)

    def debug(self, message: str, *args: Any) -> None:
        self._log("DEBUG", message, args)

    def _log(self, level: str, message: str, args: tuple) -> None:
        timestamp = datetime.now().strftime(OUTPUT_TIMESTAMP_FORMAT)[:-3]
        text = message % args if args else message
        self.lines.append(f"[{timestamp}] [{level}] {text}")


class OutputLine(BaseModel):
    """One parsed line of an execution's output."""

    timestamp: Optional[str] = None
    level: Optional[str] = None
    message: str


def parse_output_lines(output: str) -> List[OutputLine]:
    """
    Split execution output back into leveled lines.

    Lines that do not start with the ``[timestamp] [LEVEL]`` header are
    continuations of the previous message (multi-line log text) or, when
    nothing precedes them, unleveled lines of their own.
    """
    parsed: List[OutputLine] = []
    if not output:
        return parsed

    for raw in output.split("\n"):
        match = _OUTPUT_LINE_RE.match(raw)
        if match:
            parsed.append(OutputLine(**match.groupdict()))
        elif parsed:
            parsed[-1].message += "\n" + raw
        else:
            parsed.append(OutputLine(message=raw))
    return parsed


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of one invocation as seen by the runner."""

    execution_id: int
    success: bool
    error: str
    duration_ms: int
