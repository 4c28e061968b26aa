# tests/fakes.py

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from secretary_sync.core.errors import RemoteUnavailableError
from secretary_sync.core.ports import RawTask
from secretary_sync.remote.query import MAX_BATCH_SIZE, Document, Query, QueryPage, WriteOp, apply_query
from secretary_sync.remote.sqlite_store import split_path


class FakeRemoteStore:
    """
    In-memory RemoteStore for unit tests.

    - `online=False` makes every call raise RemoteUnavailableError
    - `fail_writes=True` keeps reads working but rejects set/update/delete/batch_write
    - `supports_where` can be switched off to exercise client-side filtering
    - records calls for assertions
    """

    def __init__(self, *, max_batch_size: int = MAX_BATCH_SIZE, supports_where: bool = True) -> None:
        self.docs: dict[str, dict[str, Any]] = {}
        self.online = True
        self.fail_writes = False
        self.max_batch_size = max_batch_size
        self.supports_where = supports_where
        self.calls: list[tuple[str, str]] = []
        self.batches: list[int] = []
        # Optional per-call delays to interleave coroutines in ordering tests.
        self.write_delay = 0.0
        self.read_delay = 0.0

    def is_available(self) -> bool:
        return self.online

    def _check(self, *, write: bool = False) -> None:
        if not self.online:
            raise RemoteUnavailableError("fake remote offline")
        if write and self.fail_writes:
            raise RemoteUnavailableError("fake remote rejected write")

    async def get(self, path: str) -> dict[str, Any] | None:
        self.calls.append(("get", path))
        self._check()
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        doc = self.docs.get(path)
        return dict(doc) if doc is not None else None

    async def set(self, path: str, data: Mapping[str, Any]) -> None:
        self.calls.append(("set", path))
        self._check(write=True)
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        self.docs[path] = dict(data)

    async def update(self, path: str, data: Mapping[str, Any]) -> None:
        self.calls.append(("update", path))
        self._check(write=True)
        self.docs[path] = {**self.docs.get(path, {}), **dict(data)}

    async def delete(self, path: str) -> None:
        self.calls.append(("delete", path))
        self._check(write=True)
        self.docs.pop(path, None)

    async def query(self, collection_path: str, query: Query) -> QueryPage:
        self.calls.append(("query", collection_path))
        self._check()
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        prefix = collection_path.strip("/") + "/"
        docs = []
        for path, data in self.docs.items():
            if not path.startswith(prefix):
                continue
            collection, key = split_path(path)
            if collection == collection_path.strip("/"):
                docs.append(Document(key=key, data=dict(data)))
        return apply_query(docs, query)

    async def batch_write(self, ops: list[WriteOp]) -> None:
        self.calls.append(("batch_write", str(len(ops))))
        self._check(write=True)
        if len(ops) > self.max_batch_size:
            raise ValueError(f"batch too large: {len(ops)}")
        self.batches.append(len(ops))
        for op in ops:
            if op.kind == "delete":
                self.docs.pop(op.path, None)
            else:
                self.docs[op.path] = {**(self.docs.get(op.path, {}) if op.kind == "update" else {}), **(op.data or {})}

    def paths(self, collection: str, user_id: str = "default-user") -> list[str]:
        prefix = f"users/{user_id}/{collection}/"
        return sorted(p[len(prefix):] for p in self.docs if p.startswith(prefix))


@dataclass(slots=True)
class StaticTaskSource:
    """TaskSource returning a fixed mapping."""

    records: dict[str, list[RawTask]] = field(default_factory=dict)
    calls: int = 0

    def load_raw_tasks(self) -> dict[str, list[RawTask]]:
        self.calls += 1
        return {k: [dict(r) for r in v] for k, v in self.records.items()}


class RecordingScheduleGenerator:
    """ScheduleGenerator that returns a canned schedule and remembers what it got."""

    def __init__(self, result: dict[str, Any] | None = None) -> None:
        self.result = result or {"schedule": [], "summary": "empty"}
        self.calls: list[tuple[list[Any], str, Any]] = []

    def generate(self, tasks: list[Any], target_date: str, context: Any) -> dict[str, Any]:
        self.calls.append((list(tasks), target_date, context))
        return dict(self.result)
