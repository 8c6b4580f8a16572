"""
Test jobs driven by real APScheduler timer ticks.

These use a seconds field so the scheduler fires within the test.
"""

import asyncio

from jobkeeper.models import ExecutionTrigger, RecurringJobStatus

EVERY_SECOND = "* * * * * *"


class TestSchedulerTicks:
    async def test_bounded_job_completes_from_ticks(self, manager, calls, wait_until):
        await manager.add_job("ticker", "echo", {"tick": True}, 2, EVERY_SECOND)

        await wait_until(lambda: len(calls) >= 2, timeout=6)
        await wait_until(lambda: not manager.live_job_ids(), timeout=2)

        stored = await manager.get_job("ticker")
        assert stored.status == RecurringJobStatus.COMPLETED
        assert stored.times_run == 2

        history = await manager.get_execution_history("ticker")
        assert len(history) == 2
        assert all(e.trigger == ExecutionTrigger.SCHEDULE for e in history)

        # No more ticks after completion
        await asyncio.sleep(1.5)
        assert len(calls) == 2

    async def test_paused_job_does_not_tick(self, manager, calls):
        await manager.add_job("idle", "echo", None, 0, EVERY_SECOND)
        await manager.pause_job("idle")

        await asyncio.sleep(1.5)

        assert calls == []
        assert await manager.get_execution_history("idle") == []

    async def test_resumed_job_ticks_again(self, manager, calls, wait_until):
        await manager.add_job("napper", "echo", None, 0, EVERY_SECOND)
        await manager.pause_job("napper")

        await manager.resume_job("napper")
        await wait_until(lambda: len(calls) >= 1, timeout=3)

        assert (await manager.get_job("napper")).times_run >= 1
