# tests/test_migration.py

from __future__ import annotations

import json
import time
from pathlib import Path

import pytest

from secretary_sync.cache.bounded import BoundedCache
from secretary_sync.core.errors import ValidationError
from secretary_sync.storage.local_store import SqliteLocalStore
from secretary_sync.storage.sync_markers import SyncMarkerStore
from secretary_sync.sync.coordinator import SyncCoordinator
from secretary_sync.tasks.task_models import Section
from secretary_sync.tasks.task_repository import MIGRATION_LOCK_KEY, TaskRepository
from secretary_sync.tasks.task_source import JsonTaskSource

from .fakes import FakeRemoteStore, StaticTaskSource

ERRANDS = ["parcel", "bank", "pharmacy", "garage", "library", "tailor", "florist", "bakery", "post", "market"]


def _records() -> dict[str, list[dict]]:
    return {"todayTasks": [{"text": f"Visit {e}"} for e in ERRANDS]}


@pytest.mark.asyncio
async def test_migration_is_idempotent(task_repo: TaskRepository, remote: FakeRemoteStore) -> None:
    first = await task_repo.migrate_batch(_records())
    assert first.migrated == 10
    assert first.skipped == 0
    assert first.errored == 0
    assert first.sections["todayTasks"].migrated == 10
    assert len(remote.paths("tasks")) == 10

    second = await task_repo.migrate_batch(_records())
    assert second.migrated == 0
    assert second.skipped == 10
    assert len(remote.paths("tasks")) == 10


@pytest.mark.asyncio
async def test_migration_skips_existing_ids_and_texts(task_repo: TaskRepository) -> None:
    existing = await task_repo.create({"text": "Visit bank", "section": "today"})

    result = await task_repo.migrate_batch(
        {
            "todayTasks": [
                {"id": existing.id, "text": "Renamed elsewhere"},
                {"id": "task-other", "text": "VISIT BANK"},
                {"id": "task-new", "text": "Visit tailor"},
            ]
        }
    )

    assert result.migrated == 1
    assert result.skipped == 2
    assert (await task_repo.get("task-new")) is not None


@pytest.mark.asyncio
async def test_migration_writes_in_chunks_of_the_remote_limit(
    local_store: SqliteLocalStore, markers: SyncMarkerStore
) -> None:
    remote = FakeRemoteStore(max_batch_size=4)
    repo = TaskRepository(SyncCoordinator(local_store, markers, remote), BoundedCache("tasks", 50))

    result = await repo.migrate_batch(_records())

    assert result.migrated == 10
    assert remote.batches == [4, 4, 2]


@pytest.mark.asyncio
async def test_bad_records_are_collected_not_fatal(task_repo: TaskRepository) -> None:
    result = await task_repo.migrate_batch(
        {
            "todayTasks": [{"id": "task-empty", "text": ""}, {"text": "Visit bank"}],
            "dailyTasks": ["not a mapping", {"task": "Stretch"}],
        }
    )

    assert result.migrated == 2
    assert result.errored == 2
    assert {e.section for e in result.errors} == {"todayTasks", "dailyTasks"}
    assert result.errors[0].record_id == "task-empty"
    assert result.sections["dailyTasks"].errors == 1
    assert [t.text for t in await task_repo.get_by_section(Section.DAILY)] == ["Stretch"]

    status = task_repo.migration_status()
    assert status is not None
    assert status["migrated"] == 2
    assert status["errored"] == 2


@pytest.mark.asyncio
async def test_fresh_lock_blocks_a_second_migration(task_repo: TaskRepository, local_store: SqliteLocalStore) -> None:
    local_store.set(MIGRATION_LOCK_KEY, {"startedAt": time.time()})

    result = await task_repo.migrate_batch(_records())

    assert result.locked is True
    assert result.migrated == 0
    assert local_store.get(MIGRATION_LOCK_KEY) is not None


@pytest.mark.asyncio
async def test_stale_lock_is_cleared(task_repo: TaskRepository, local_store: SqliteLocalStore) -> None:
    local_store.set(MIGRATION_LOCK_KEY, {"startedAt": time.time() - 10_000})

    result = await task_repo.migrate_batch(_records())

    assert result.locked is False
    assert result.migrated == 10
    assert local_store.get(MIGRATION_LOCK_KEY) is None


@pytest.mark.asyncio
async def test_offline_migration_is_replayed(
    task_repo: TaskRepository, coordinator: SyncCoordinator, remote: FakeRemoteStore
) -> None:
    remote.online = False
    result = await task_repo.migrate_batch(_records())
    assert result.migrated == 10
    assert remote.paths("tasks") == []
    assert len(coordinator.pending_markers("tasks")) == 10

    remote.online = True
    assert await coordinator.replay_pending() == 10
    assert len(remote.paths("tasks")) == 10


@pytest.mark.asyncio
async def test_migrate_from_source(task_repo: TaskRepository) -> None:
    source = StaticTaskSource(_records())
    result = await task_repo.migrate_from_source(source)
    assert source.calls == 1
    assert result.migrated == 10


def test_json_task_source(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(
        json.dumps({"tasks": {"todayTasks": ["Visit bank", {"text": "Visit post"}], "meta": "ignored"}}),
        encoding="utf-8",
    )

    assert JsonTaskSource(path).load_raw_tasks() == {
        "todayTasks": [{"text": "Visit bank"}, {"text": "Visit post"}],
    }

    with pytest.raises(ValidationError):
        JsonTaskSource(tmp_path / "missing.json").load_raw_tasks()

    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ValidationError):
        JsonTaskSource(broken).load_raw_tasks()
