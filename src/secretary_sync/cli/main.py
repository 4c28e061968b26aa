# src/secretary_sync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, runs one subcommand and shuts down:
- sync     replay pending writes once (or keep the replay loop running with --watch)
- status   sync status and cache usage
- migrate  import tasks from a JSON task file
- dedupe   collapse duplicate tasks
- context  multi-day workload context for a date
- plan     generate and save a schedule for a date
- history  list saved history records
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from dataclasses import asdict
from typing import Any

from ..cli.bootstrap import create_initial_state, start_sync_loop
from ..config import get_settings
from ..core.errors import ScheduleGenerationError, SecretaryError
from ..core.state import AppState
from ..core.timeutil import shift_day, today_key
from ..logging_setup import setup_logging
from ..schedules.schedule_repository import merge_rollover_tasks
from ..tasks.task_source import JsonTaskSource

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def cmd_sync(state: AppState, args: argparse.Namespace) -> int:
    if not args.watch:
        replayed = await state.coordinator.replay_pending()
        _print_json({"replayed": replayed, **asdict(state.coordinator.sync_status())})
        return 0

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Some platforms do not support signal handlers in the event loop.
            pass

    start_sync_loop(state)
    logger.info("Sync loop running every %.0fs. Press Ctrl+C to stop.", state.settings.sync_interval_seconds)
    await stop.wait()
    return 0


async def cmd_status(state: AppState, args: argparse.Namespace) -> int:
    _print_json(
        {
            **asdict(state.coordinator.sync_status()),
            "migration": state.tasks.migration_status(),
            "caches": [c.stats() for c in state.caches()],
        }
    )
    return 0


async def cmd_migrate(state: AppState, args: argparse.Namespace) -> int:
    result = await state.tasks.migrate_from_source(JsonTaskSource(args.path))
    _print_json(result.to_dict())
    return 1 if result.locked else 0


async def cmd_dedupe(state: AppState, args: argparse.Namespace) -> int:
    if args.force:
        result = await state.tasks.deduplicate()
    else:
        result = await state.tasks.deduplicate_if_due(state.settings.dedup_interval_hours)
    if result is None:
        _print_json({"skipped": True, "reason": "dedup ran recently"})
        return 0
    _print_json(asdict(result))
    return 0


async def cmd_context(state: AppState, args: argparse.Namespace) -> int:
    ctx = await state.schedules.load_multi_day_context(args.date, args.before, args.after)
    _print_json(ctx.to_dict())
    return 0


async def cmd_patterns(state: AppState, args: argparse.Namespace) -> int:
    patterns = await state.schedules.analyze_completion_patterns(today=args.date, days=args.days)
    _print_json(patterns.to_dict())
    return 0


async def cmd_plan(state: AppState, args: argparse.Namespace) -> int:
    date = args.date
    open_tasks = await state.tasks.get_tasks(completed=False)
    rollovers = await state.schedules.check_for_rollovers(date)
    tasks = merge_rollover_tasks(open_tasks, rollovers)
    context = await state.schedules.load_multi_day_context(date)
    patterns = await state.schedules.analyze_completion_patterns(today=shift_day(date, -1))
    if patterns.sample_size:
        context.patterns = patterns.for_generator()

    try:
        proposed = await asyncio.to_thread(state.generator.generate, tasks, date, context)
    except ScheduleGenerationError as e:
        logger.warning("Schedule generator failed (%s); using fallback schedule", e)
        proposed = state.fallback_generator.generate(tasks, date, context)

    schedule = await state.schedules.save(date, proposed)
    capacity = state.schedules.calculate_daily_capacity(schedule)
    _print_json({"schedule": schedule.to_dict(), "capacity": capacity.to_dict(), "rollovers": len(rollovers)})
    return 0


async def cmd_history(state: AppState, args: argparse.Namespace) -> int:
    page = await state.schedules.get_history(args.start, args.end, limit=args.limit, offset=args.offset)
    _print_json(
        {
            "total": page.total,
            "hasMore": page.has_more,
            "records": [
                {"date": r.date, "version": r.schedule.version, **r.analytics()}
                for r in page.records
            ],
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    today = today_key()
    parser = argparse.ArgumentParser(prog="secretary", description="Offline-first task and schedule store")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Replay pending writes to the remote store")
    sync_parser.add_argument("--watch", action="store_true", help="Keep replaying in the background until stopped")
    sync_parser.set_defaults(func=cmd_sync)

    status_parser = subparsers.add_parser("status", help="Show sync status and cache usage")
    status_parser.set_defaults(func=cmd_status)

    migrate_parser = subparsers.add_parser("migrate", help="Import tasks from a JSON task file")
    migrate_parser.add_argument("path", help='JSON file shaped like {"todayTasks": [...], ...}')
    migrate_parser.set_defaults(func=cmd_migrate)

    dedupe_parser = subparsers.add_parser("dedupe", help="Remove duplicate tasks")
    dedupe_parser.add_argument("--force", action="store_true", help="Run even if dedup ran recently")
    dedupe_parser.set_defaults(func=cmd_dedupe)

    context_parser = subparsers.add_parser("context", help="Show multi-day workload context")
    context_parser.add_argument("--date", default=today, help="Center date (YYYY-MM-DD)")
    context_parser.add_argument("--before", type=int, default=2)
    context_parser.add_argument("--after", type=int, default=3)
    context_parser.set_defaults(func=cmd_context)

    patterns_parser = subparsers.add_parser("patterns", help="Analyze completion patterns from schedule history")
    patterns_parser.add_argument("--date", default=today, help="Last day of the window (YYYY-MM-DD)")
    patterns_parser.add_argument("--days", type=int, default=30)
    patterns_parser.set_defaults(func=cmd_patterns)

    plan_parser = subparsers.add_parser("plan", help="Generate and save a schedule")
    plan_parser.add_argument("--date", default=today, help="Target date (YYYY-MM-DD)")
    plan_parser.set_defaults(func=cmd_plan)

    history_parser = subparsers.add_parser("history", help="List schedule history")
    history_parser.add_argument("--start", default=shift_day(today, -30))
    history_parser.add_argument("--end", default=today)
    history_parser.add_argument("--limit", type=int, default=30)
    history_parser.add_argument("--offset", type=int, default=0)
    history_parser.set_defaults(func=cmd_history)

    return parser


async def _run(args: argparse.Namespace, settings) -> int:
    state = create_initial_state(settings=settings)
    try:
        return await args.func(state, args)
    finally:
        await state.close()


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.log_dir, console_level=console_level)

    args = build_parser().parse_args(argv)
    logger.debug("Starting %s command=%s", settings.app_name, args.command)

    try:
        return asyncio.run(_run(args, settings))
    except SecretaryError as e:
        logger.error("%s: %s", e.__class__.__name__, e)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
