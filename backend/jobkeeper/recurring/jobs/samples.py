import asyncio
import json

from ...logger import logger
from ..types import ExecutionContext

LONG_MESSAGE_THRESHOLD = 100


async def log_job(context: ExecutionContext):
    """Write the message passed as args (a JSON string, or raw text) to the output."""
    if context.args:
        try:
            message = json.loads(context.args)
        except ValueError:
            message = context.args.decode("utf-8", errors="replace")
        if not isinstance(message, str):
            message = json.dumps(message, ensure_ascii=False)
    else:
        message = "Scheduled log job"

    context.info("Job started")
    context.info("Log message: %s", message)

    await asyncio.sleep(0.1)
    context.debug("Step 1: preparing data")

    await asyncio.sleep(0.2)
    context.debug("Step 2: processing data")

    if len(message) > LONG_MESSAGE_THRESHOLD:
        context.warning("Message is long: %d characters", len(message))

    context.info("Job finished")


async def test_job(context: ExecutionContext):
    """Simulate two seconds of work; stops early if the execution is cancelled."""
    logger.info(f"[recurring test] running test job {context.job_name}")
    context.info("Simulating work")
    await asyncio.sleep(2)
    context.info("Work done")


async def fail_job(context: ExecutionContext):
    logger.info(f"[recurring fail] running fail job {context.job_name}")
    context.error("About to fail on purpose")
    raise RuntimeError("This job always fails")
