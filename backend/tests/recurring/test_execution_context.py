"""
Test the execution context handed to job functions and the output format.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from jobkeeper.models import ExecutionTrigger
from jobkeeper.recurring import ExecutionContext, parse_output_lines

LINE_RE = re.compile(
    r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3}\] \[(INFO|WARN|ERROR|DEBUG)\] .*$"
)


def make_context(args: bytes = b"") -> ExecutionContext:
    return ExecutionContext(
        job_id=1,
        job_name="job",
        execution_id=10,
        trigger=ExecutionTrigger.SCHEDULE,
        args=args,
        started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        timeout_seconds=60,
    )


class TestExecutionContextLogging:
    def test_line_format(self):
        context = make_context()
        context.info("hello")
        context.warning("careful")
        context.error("broken")
        context.debug("details")

        assert len(context.lines) == 4
        assert all(LINE_RE.match(line) for line in context.lines)
        levels = [line.split("] [")[1].split("]")[0] for line in context.lines]
        assert levels == ["INFO", "WARN", "ERROR", "DEBUG"]

    def test_percent_formatting(self):
        context = make_context()
        context.info("processed %d items for %s", 3, "alice")
        assert context.lines[0].endswith("[INFO] processed 3 items for alice")

    def test_message_without_args_is_literal(self):
        context = make_context()
        context.info("100% done")
        assert context.lines[0].endswith("[INFO] 100% done")

    def test_output_joins_lines(self):
        context = make_context()
        assert context.output == ""
        context.info("one")
        context.info("two")
        assert context.output.count("\n") == 1

    def test_deadline(self):
        context = make_context()
        assert context.deadline == context.started_at + timedelta(seconds=60)


class TestLoadArgs:
    def test_empty_returns_default(self):
        assert make_context().load_args() is None
        assert make_context().load_args(default={"a": 1}) == {"a": 1}

    def test_json(self):
        context = make_context(b'{"message": "hi", "count": 2}')
        assert context.load_args() == {"message": "hi", "count": 2}

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError):
            make_context(b"not json").load_args()


class TestParseOutputLines:
    def test_round_trip_levels(self):
        context = make_context()
        context.info("started")
        context.warning("slow")
        context.error("failed")

        lines = parse_output_lines(context.output)
        assert [line.level for line in lines] == ["INFO", "WARN", "ERROR"]
        assert [line.message for line in lines] == ["started", "slow", "failed"]
        assert all(line.timestamp for line in lines)

    def test_continuation_lines(self):
        context = make_context()
        context.error("Traceback:\n  File x\nValueError: bad")
        context.info("after")

        lines = parse_output_lines(context.output)
        assert len(lines) == 2
        assert lines[0].message == "Traceback:\n  File x\nValueError: bad"
        assert lines[1].message == "after"

    def test_unleveled_text(self):
        lines = parse_output_lines("plain text")
        assert len(lines) == 1
        assert lines[0].level is None
        assert lines[0].message == "plain text"

    def test_empty(self):
        assert parse_output_lines("") == []
