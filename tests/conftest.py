# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from secretary_sync.cache.bounded import BoundedCache
from secretary_sync.schedules.schedule_repository import ScheduleRepository
from secretary_sync.storage.local_store import SqliteLocalStore
from secretary_sync.storage.sync_markers import SyncMarkerStore
from secretary_sync.sync.coordinator import SyncCoordinator
from secretary_sync.tasks.task_repository import TaskRepository

from .fakes import FakeRemoteStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="secretary-test",
        log_level="DEBUG",
        log_dir=tmp_path / "logs",
        data_dir=tmp_path,
        local_db_path=tmp_path / "local.sqlite3",
        remote_db_path=tmp_path / "remote.sqlite3",
        local_prefix="test-",
        user_id="default-user",
        remote_enabled=True,
        remote_timeout_seconds=1.0,
        remote_batch_limit=500,
        task_cache_size=100,
        schedule_cache_size=10,
        history_cache_size=10,
        sync_interval_seconds=0.5,
        migration_lock_stale_seconds=300.0,
        dedup_interval_hours=24.0,
        history_days_to_keep=90,
        max_history_versions=5,
        workday_hours=8.0,
        default_item_minutes=30,
        openrouter_api_key=None,
        openrouter_base_url="https://openrouter.ai/api/v1",
        llm_models=["test/model"],
        extra_headers={},
    )


@pytest.fixture()
def local_store(settings: SimpleNamespace) -> SqliteLocalStore:
    return SqliteLocalStore(settings.local_db_path, prefix=settings.local_prefix)


@pytest.fixture()
def markers(settings: SimpleNamespace) -> SyncMarkerStore:
    return SyncMarkerStore(settings.local_db_path)


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def coordinator(local_store: SqliteLocalStore, markers: SyncMarkerStore, remote: FakeRemoteStore) -> SyncCoordinator:
    """
    NOTE: Local side uses real SQLite stores because their correctness
    is part of what we want to test; only the remote is faked.
    """
    return SyncCoordinator(local_store, markers, remote)


@pytest.fixture()
def task_repo(coordinator: SyncCoordinator) -> TaskRepository:
    return TaskRepository(coordinator, BoundedCache("tasks", 100), page_size=3)


@pytest.fixture()
def schedule_repo(coordinator: SyncCoordinator) -> ScheduleRepository:
    return ScheduleRepository(
        coordinator,
        BoundedCache("schedules", 10),
        BoundedCache("history", 10),
        max_history_versions=5,
    )
