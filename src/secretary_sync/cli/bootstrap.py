# src/secretary_sync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete stores, caches and repositories into AppState,
- starts/stops the background sync loop.
"""

from __future__ import annotations

import asyncio
import logging

from ..cache.bounded import BoundedCache
from ..config import get_settings
from ..core.ports import RemoteStore, ScheduleGenerator
from ..core.state import AppState
from ..llm.fallback import FallbackScheduleGenerator
from ..llm.generator import OpenRouterScheduleGenerator
from ..preferences import PreferencesRepository
from ..remote.sqlite_store import SqliteDocumentStore
from ..schedules.schedule_repository import ScheduleRepository
from ..storage.local_store import SqliteLocalStore
from ..storage.sync_markers import SyncMarkerStore
from ..sync.coordinator import SyncCoordinator
from ..sync.sync_loop import run_sync_loop
from ..tasks.task_repository import TaskRepository

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.local_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.remote_db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_remote(settings) -> RemoteStore:
    remote = SqliteDocumentStore(
        settings.remote_db_path,
        timeout_seconds=settings.remote_timeout_seconds,
        max_batch_size=settings.remote_batch_limit,
    )
    if not settings.remote_enabled:
        remote.set_online(False)
    return remote


def _build_generator(settings) -> ScheduleGenerator:
    llm = OpenRouterScheduleGenerator(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        models=list(settings.llm_models),
        extra_headers=dict(settings.extra_headers),
        workday_hours=settings.workday_hours,
    )
    if llm.configured:
        return llm
    logger.info("No LLM API key configured; using the deterministic fallback scheduler")
    return FallbackScheduleGenerator()


def create_initial_state(
    *,
    settings=None,
    remote: RemoteStore | None = None,
    generator: ScheduleGenerator | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the remote store) injectable makes the app easy to test.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    local = SqliteLocalStore(settings.local_db_path, prefix=settings.local_prefix)
    # Markers share the local database file; they live in their own table.
    markers = SyncMarkerStore(settings.local_db_path)
    remote = remote if remote is not None else _build_remote(settings)
    coordinator = SyncCoordinator(local, markers, remote, user_id=settings.user_id)

    tasks = TaskRepository(
        coordinator,
        BoundedCache("tasks", settings.task_cache_size),
        migration_batch_size=settings.remote_batch_limit,
        lock_stale_seconds=settings.migration_lock_stale_seconds,
    )
    schedules = ScheduleRepository(
        coordinator,
        BoundedCache("schedules", settings.schedule_cache_size),
        BoundedCache("history", settings.history_cache_size),
        workday_hours=settings.workday_hours,
        default_item_minutes=settings.default_item_minutes,
        max_history_versions=settings.max_history_versions,
    )

    return AppState(
        settings=settings,
        local=local,
        markers=markers,
        remote=remote,
        coordinator=coordinator,
        tasks=tasks,
        schedules=schedules,
        preferences=PreferencesRepository(coordinator),
        generator=generator if generator is not None else _build_generator(settings),
        fallback_generator=FallbackScheduleGenerator(),
    )


def start_sync_loop(state: AppState) -> asyncio.Task[None]:
    """Start the background replay loop on the running event loop; AppState.close() cancels it."""
    if state.sync_task is None or state.sync_task.done():
        state.sync_task = asyncio.create_task(
            run_sync_loop(state.coordinator, interval_seconds=state.settings.sync_interval_seconds),
            name="secretary-sync-loop",
        )
    return state.sync_task
