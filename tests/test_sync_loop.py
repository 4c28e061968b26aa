# tests/test_sync_loop.py

from __future__ import annotations

import asyncio
import contextlib

import pytest

from secretary_sync.storage.sync_markers import SyncStatus
from secretary_sync.sync.coordinator import SyncCoordinator
from secretary_sync.sync.sync_loop import run_sync_loop, sync_once

from .fakes import FakeRemoteStore


@pytest.mark.asyncio
async def test_sync_once_replays_on_reconnect(coordinator: SyncCoordinator, remote: FakeRemoteStore) -> None:
    remote.online = False
    await coordinator.write("tasks", "t1", {"text": "a"})

    online, replayed = await sync_once(coordinator, was_online=None)
    assert (online, replayed) == (False, 0)

    remote.online = True
    online, replayed = await sync_once(coordinator, was_online=online)
    assert (online, replayed) == (True, 1)
    assert remote.paths("tasks") == ["t1"]


@pytest.mark.asyncio
async def test_sync_once_retries_pending_while_online(coordinator: SyncCoordinator, remote: FakeRemoteStore) -> None:
    remote.fail_writes = True
    await coordinator.write("tasks", "t1", {"text": "a"})
    remote.fail_writes = False

    online, replayed = await sync_once(coordinator, was_online=True)
    assert (online, replayed) == (True, 1)

    # Nothing pending: no replay at all.
    assert await sync_once(coordinator, was_online=True) == (True, 0)


@pytest.mark.asyncio
async def test_run_sync_loop_drains_pending_until_cancelled(
    coordinator: SyncCoordinator, remote: FakeRemoteStore
) -> None:
    remote.online = False
    await coordinator.write("tasks", "t1", {"text": "a"})
    remote.online = True

    task = asyncio.create_task(run_sync_loop(coordinator, interval_seconds=0.5))
    try:
        for _ in range(50):
            await asyncio.sleep(0.01)
            marker = coordinator.marker("tasks", "t1")
            if marker is not None and marker.status == SyncStatus.SYNCED:
                break
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    marker = coordinator.marker("tasks", "t1")
    assert marker is not None and marker.status == SyncStatus.SYNCED
    assert remote.paths("tasks") == ["t1"]
