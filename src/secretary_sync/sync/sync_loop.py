# src/secretary_sync/sync/sync_loop.py

from __future__ import annotations

"""
Background replay loop.

Every interval it:
- notices connectivity transitions (offline -> online),
- replays pending writes through the coordinator.

To stop it, cancel the coroutine/task.
"""

import asyncio
import logging

from .coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


async def sync_once(coordinator: SyncCoordinator, *, was_online: bool | None = None) -> tuple[bool, int]:
    """
    One loop iteration. Returns (online_now, replayed).

    A transition to online goes through on_connectivity_change(); otherwise
    pending writes are replayed only when some exist.
    """
    online = coordinator.is_online()
    replayed = 0

    if was_online is not None and online != was_online:
        replayed = await coordinator.on_connectivity_change(online)
    elif online and coordinator.pending_markers():
        replayed = await coordinator.replay_pending()

    return online, replayed


async def run_sync_loop(
        coordinator: SyncCoordinator,
        *,
        interval_seconds: float = 30.0,
) -> None:
    sleep_s = max(0.5, float(interval_seconds))
    was_online: bool | None = None

    while True:
        try:
            was_online, replayed = await sync_once(coordinator, was_online=was_online)
            if replayed:
                logger.info("Sync loop replayed %d writes", replayed)
        except Exception:
            logger.exception("sync iteration failed")

        await asyncio.sleep(sleep_s)
