# src/secretary_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage backends and schedule generators swappable and makes testing easier.
"""

from typing import Any, Mapping, Protocol

from ..remote.query import Query, QueryPage, WriteOp

RawTask = dict[str, Any]
# Loosely-typed task record as produced by an external parser (markdown, JSON, ...).


class LocalStore(Protocol):
    """
    Synchronous key/value persistence, namespaced by a fixed prefix.

    Values are JSON-compatible dicts. Failures raise StorageUnavailableError.
    """

    def get(self, key: str) -> dict[str, Any] | None: ...
    def set(self, key: str, value: Mapping[str, Any]) -> None: ...
    def remove(self, key: str) -> None: ...
    def scan(self, key_prefix: str) -> dict[str, dict[str, Any]]: ...


class RemoteStore(Protocol):
    """
    Abstract document collection store.

    Paths look like users/{user_id}/{collection}/{key}. Any failure (offline,
    timeout, rejected write) may surface as any exception; the coordinator
    absorbs them. `max_batch_size` caps batch_write.
    """

    max_batch_size: int
    supports_where: bool

    def is_available(self) -> bool: ...
    async def get(self, path: str) -> dict[str, Any] | None: ...
    async def set(self, path: str, data: Mapping[str, Any]) -> None: ...
    async def update(self, path: str, data: Mapping[str, Any]) -> None: ...
    async def delete(self, path: str) -> None: ...
    async def query(self, collection_path: str, query: Query) -> QueryPage: ...
    async def batch_write(self, ops: list[WriteOp]) -> None: ...


class TaskSource(Protocol):
    """External producer of raw tasks (e.g. a markdown parser), grouped by section."""

    def load_raw_tasks(self) -> dict[str, list[RawTask]]: ...


class ScheduleGenerator(Protocol):
    """
    Turns a task list + multi-day context into a proposed schedule dict
    ({"schedule": [...], "summary": "..."}). The core never calls it directly;
    it only persists what it returns.
    """

    def generate(self, tasks: list[Any], target_date: str, context: Any) -> dict[str, Any]: ...
