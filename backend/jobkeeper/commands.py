"""
Administrative command line for recurring jobs.

Usage: python -m jobkeeper.commands <command> [options]
"""

import argparse
import asyncio
import json
from typing import Any

from .config import settings
from .db.database import create_engine, create_session_maker, init_db
from .logger import logger
from .models import RecurringJob, RecurringJobExecution, RecurringJobStatus
from .recurring import (
    InvalidStateError,
    RecurringJobError,
    TaskManager,
    create_task_manager,
)

# Commands that change jobs. A running server only learns about changes made
# through its own API, so these work on the store directly only when asked to.
MUTATING_COMMANDS = ("add", "update", "pause", "resume", "remove", "run")


def _parse_args_value(raw: str | None) -> Any:
    """Job args given on the command line are JSON; plain text is kept as a string."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _format_job(job: RecurringJob) -> str:
    budget = f"{job.times_run}/{job.times}" if job.times else f"{job.times_run}/-"
    next_run = job.next_run_at.isoformat() if job.next_run_at else "-"
    return (
        f"{job.id:>4}  {job.name:<24} {job.status.value:<9} {job.cron_expression:<18} "
        f"{job.function_name:<12} runs={budget:<8} errors={job.error_count:<4} "
        f"next={next_run}"
    )


def _format_execution(execution: RecurringJobExecution) -> str:
    result = "ok" if execution.success else f"failed: {execution.error}"
    duration = f"{execution.duration}ms" if execution.duration is not None else "-"
    return (
        f"{execution.id:>6}  {execution.started_at.isoformat()}  "
        f"{execution.trigger.value:<8} {duration:>8}  {result}"
    )


async def run_command(manager: TaskManager, args: argparse.Namespace) -> None:
    if args.command in MUTATING_COMMANDS and not args.offline:
        raise InvalidStateError(
            f"'{args.command}' changes jobs behind a running server; use the "
            "/api/recurring endpoints, or pass --offline when no server is running"
        )

    if args.command == "functions":
        for name, registration in sorted(manager.registry.get_all().items()):
            print(f"{name:<16} {registration.description}")

    elif args.command == "list":
        statuses = [RecurringJobStatus(s) for s in args.status] if args.status else None
        for job in await manager.list_jobs(statuses):
            print(_format_job(job))

    elif args.command == "show":
        job = await manager.get_job(args.name)
        print(_format_job(job))
        if job.args:
            print(f"args: {job.args}")
        if job.last_error:
            print(f"last error: {job.last_error}")

    elif args.command == "add":
        job = await manager.add_job(
            name=args.name,
            function_name=args.function,
            args=_parse_args_value(args.args),
            times=args.times,
            cron_expression=args.cron,
        )
        logger.info(f"Recurring job {job.name} created with id {job.id}")

    elif args.command == "update":
        job = await manager.get_job(args.name)
        job = await manager.update_job(
            job.id,
            name=args.new_name or job.name,
            function_name=args.function or job.function_name,
            args=(
                _parse_args_value(args.args)
                if args.args is not None
                else job.args_bytes
            ),
            times=args.times if args.times is not None else job.times,
            cron_expression=args.cron or job.cron_expression,
            keep_status=args.keep_status,
        )
        logger.info(f"Recurring job {job.name} updated")

    elif args.command == "pause":
        await manager.pause_job(args.name)

    elif args.command == "resume":
        await manager.resume_job(args.name)

    elif args.command == "remove":
        await manager.remove_job(args.name)

    elif args.command == "run":
        task = await manager.run_job_now(args.name)
        outcome = await task
        if outcome is None:
            print(f"Recurring job {args.name} was skipped")
            return
        execution = await manager.get_execution(outcome.execution_id)
        if execution is not None:
            print(_format_execution(execution))
            if execution.output:
                print(execution.output)

    elif args.command == "history":
        for execution in await manager.get_execution_history(args.name, args.limit):
            print(_format_execution(execution))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobkeeper")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("functions", help="List registered job functions")

    list_parser = subparsers.add_parser("list", help="List recurring jobs")
    list_parser.add_argument(
        "--status",
        action="append",
        choices=[s.value for s in RecurringJobStatus],
    )

    for command in ("show", "pause", "resume", "remove", "run"):
        command_parser = subparsers.add_parser(command)
        command_parser.add_argument("name", type=str)

    add_parser = subparsers.add_parser("add", help="Create a recurring job")
    add_parser.add_argument("name", type=str)
    add_parser.add_argument("--function", type=str, required=True)
    add_parser.add_argument("--cron", type=str, required=True)
    add_parser.add_argument("--args", type=str, default=None)
    add_parser.add_argument("--times", type=int, default=0)

    update_parser = subparsers.add_parser("update", help="Update a recurring job")
    update_parser.add_argument("name", type=str)
    update_parser.add_argument("--new-name", type=str, default=None)
    update_parser.add_argument("--function", type=str, default=None)
    update_parser.add_argument("--cron", type=str, default=None)
    update_parser.add_argument("--args", type=str, default=None)
    update_parser.add_argument("--times", type=int, default=None)
    update_parser.add_argument("--keep-status", action="store_true")

    history_parser = subparsers.add_parser("history", help="Show execution history")
    history_parser.add_argument("name", type=str)
    history_parser.add_argument("--limit", type=int, default=20)

    for command in MUTATING_COMMANDS:
        subparsers.choices[command].add_argument(
            "--offline",
            action="store_true",
            help="Confirm no server is running on this database",
        )

    return parser


async def _main(args: argparse.Namespace) -> int:
    engine = create_engine(settings.database_url, echo=settings.database_echo)
    await init_db(engine)
    manager = create_task_manager(create_session_maker(engine), settings.scheduler)
    try:
        await run_command(manager, args)
    except RecurringJobError as e:
        logger.error(str(e))
        return 1
    finally:
        await manager.stop()
        await engine.dispose()
    return 0


def main() -> int:
    args = build_parser().parse_args()
    return asyncio.run(_main(args))


if __name__ == "__main__":
    raise SystemExit(main())
