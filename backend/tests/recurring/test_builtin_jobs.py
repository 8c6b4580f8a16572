"""
Test the built-in job functions.
"""

from datetime import datetime, timezone

import pytest

from jobkeeper.models import ExecutionTrigger
from jobkeeper.recurring import ExecutionContext
from jobkeeper.recurring.jobs import samples


def make_context(args: bytes = b"") -> ExecutionContext:
    return ExecutionContext(
        job_id=1,
        job_name="builtin",
        execution_id=1,
        trigger=ExecutionTrigger.MANUAL,
        args=args,
        started_at=datetime.now(timezone.utc),
        timeout_seconds=60,
    )


class TestLogJob:
    async def test_json_string_message(self):
        context = make_context(b'"hello world"')
        await samples.log_job(context)

        assert "[INFO] Log message: hello world" in context.output
        assert "[DEBUG] Step 1: preparing data" in context.output
        assert "[INFO] Job finished" in context.output
        assert "[WARN]" not in context.output

    async def test_raw_text_message(self):
        context = make_context(b"not json")
        await samples.log_job(context)
        assert "[INFO] Log message: not json" in context.output

    async def test_default_message(self):
        context = make_context()
        await samples.log_job(context)
        assert "[INFO] Log message: Scheduled log job" in context.output

    async def test_long_message_warns(self):
        context = make_context(('"' + "x" * 150 + '"').encode())
        await samples.log_job(context)
        assert "[WARN] Message is long: 150 characters" in context.output


class TestOtherBuiltins:
    async def test_fail_job_raises(self):
        context = make_context()
        with pytest.raises(RuntimeError, match="always fails"):
            await samples.fail_job(context)
        assert "[ERROR] About to fail on purpose" in context.output

    async def test_test_job_simulates_work(self):
        context = make_context()
        await samples.test_job(context)
        assert "[INFO] Work done" in context.output
