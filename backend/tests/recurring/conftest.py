"""
Shared fixtures for recurring job tests.

Every test gets its own temporary SQLite database, its own function registry
and its own TaskManager, so nothing global has to be patched.
"""

import asyncio
import tempfile
from pathlib import Path

import pytest

from jobkeeper.config import SchedulerSettings
from jobkeeper.db.database import create_engine, create_session_maker, init_db
from jobkeeper.recurring import (
    ExecutionContext,
    TaskManager,
    create_function_registry,
)


@pytest.fixture
async def session_factory():
    """Create a test database on a temporary file."""
    with tempfile.NamedTemporaryFile(delete=False, suffix=".db") as tmp_file:
        db_path = tmp_file.name

    engine = create_engine(f"sqlite:///{db_path}")
    await init_db(engine)

    yield create_session_maker(engine)

    await engine.dispose()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def calls():
    """Args seen by the ``echo`` test function, in call order."""
    return []


@pytest.fixture
def release():
    """Event the ``blocker`` test function waits on."""
    return asyncio.Event()


@pytest.fixture
def registry(calls, release):
    registry = create_function_registry()

    @registry.register("echo", description="Record the decoded args")
    async def echo(context: ExecutionContext):
        calls.append(context.load_args())
        context.info("echo %s", context.args.decode())

    @registry.register("explode")
    async def explode(context: ExecutionContext):
        context.info("about to explode")
        raise ValueError("bad input")

    @registry.register("sleepy")
    async def sleepy(context: ExecutionContext):
        await asyncio.sleep(30)

    @registry.register("blocker")
    async def blocker(context: ExecutionContext):
        await release.wait()
        context.info("released")

    return registry


@pytest.fixture
def scheduler_settings():
    return SchedulerSettings(
        execution_timeout_seconds=1,
        misfire_grace_seconds=5,
        shutdown_grace_seconds=0.2,
    )


@pytest.fixture
async def idle_manager(session_factory, registry, scheduler_settings):
    """TaskManager that has not been started."""
    manager = TaskManager(session_factory, registry, scheduler_settings)
    yield manager
    await manager.stop()


@pytest.fixture
async def manager(idle_manager):
    """Started TaskManager."""
    await idle_manager.start()
    return idle_manager


@pytest.fixture
def wait_until():
    async def _wait_until(predicate, timeout: float = 5.0, interval: float = 0.02):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(interval)

    return _wait_until
