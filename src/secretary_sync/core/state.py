# src/secretary_sync/core/state.py

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any

from ..cache.bounded import BoundedCache
from ..preferences import PreferencesRepository
from ..schedules.schedule_repository import ScheduleRepository
from ..storage.local_store import SqliteLocalStore
from ..storage.sync_markers import SyncMarkerStore
from ..sync.coordinator import SyncCoordinator
from ..tasks.task_repository import TaskRepository
from .ports import RemoteStore, ScheduleGenerator

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """
    Everything a running app needs, built once by the composition root.

    `close()` clears the caches and stops the background sync loop.
    """

    settings: Any

    local: SqliteLocalStore
    markers: SyncMarkerStore
    remote: RemoteStore
    coordinator: SyncCoordinator

    tasks: TaskRepository
    schedules: ScheduleRepository
    preferences: PreferencesRepository

    generator: ScheduleGenerator
    fallback_generator: ScheduleGenerator

    sync_task: asyncio.Task[None] | None = field(default=None, repr=False)

    def caches(self) -> list[BoundedCache[Any, Any]]:
        return [self.tasks.cache, self.schedules.schedule_cache, self.schedules.history_cache]

    async def close(self) -> None:
        if self.sync_task is not None:
            self.sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self.sync_task
            self.sync_task = None

        for cache in self.caches():
            cache.clear()

        for store in (self.local, self.markers, self.remote):
            close = getattr(store, "close", None)
            if callable(close):
                close()
        logger.debug("AppState closed")
