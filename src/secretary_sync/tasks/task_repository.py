# src/secretary_sync/tasks/task_repository.py

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..cache.bounded import BoundedCache
from ..core.errors import (
    DuplicateTaskError,
    MigrationError,
    NotFoundError,
    SecretaryError,
    StaleLockError,
    ValidationError,
)
from ..core.ports import RawTask, TaskSource
from ..core.timeutil import utc_now_iso
from ..remote.query import MAX_BATCH_SIZE, Filter, Query, encode_cursor
from ..sync.coordinator import SyncCoordinator
from .dedup import find_duplicate, group_exact, pick_survivor
from .task_models import TASK_FIELDS, Priority, Section, Task, check_task_limits, content_task_id, sanitize_date

logger = logging.getLogger(__name__)

COLLECTION = "tasks"

MIGRATION_LOCK_KEY = "migration-lock"
MIGRATION_STATUS_KEY = "migration-status"
LAST_DEDUP_KEY = "last-dedup"

DEFAULT_PAGE_SIZE = 50

_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "modified_at"})


@dataclass(slots=True)
class TaskPage:
    tasks: list[Task]
    has_more: bool
    cursor: str | None = None


@dataclass(slots=True)
class SectionStats:
    total: int = 0
    migrated: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass(slots=True)
class MigrationResult:
    migrated: int = 0
    skipped: int = 0
    errors: list[MigrationError] = field(default_factory=list)
    sections: dict[str, SectionStats] = field(default_factory=dict)
    locked: bool = False

    @property
    def errored(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "migrated": self.migrated,
            "skipped": self.skipped,
            "errored": self.errored,
            "locked": self.locked,
            "sections": {name: dataclasses.asdict(s) for name, s in self.sections.items()},
            "errors": [{"recordId": e.record_id, "section": e.section, "error": str(e)} for e in self.errors],
        }


@dataclass(slots=True)
class DedupResult:
    scanned: int = 0
    removed: int = 0
    remaining: int = 0
    errors: list[str] = field(default_factory=list)


class TaskRepository:
    """
    Task CRUD on top of the SyncCoordinator.

    Reads by id go through the BoundedCache; collection reads go through the
    coordinator's query helper (remote when reachable, local copies otherwise).
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        cache: BoundedCache[str, Task],
        *,
        migration_batch_size: int = MAX_BATCH_SIZE,
        lock_stale_seconds: float = 300.0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._sync = coordinator
        self._cache = cache
        self._migration_batch_size = max(1, int(migration_batch_size))
        self._lock_stale_seconds = float(lock_stale_seconds)
        self._page_size = max(1, int(page_size))

    @property
    def cache(self) -> BoundedCache[str, Task]:
        return self._cache

    def _remember(self, tasks: list[Task]) -> None:
        for t in tasks:
            self._cache.set(t.id, t)
        self._cache.evict_overflow()

    async def _persist(self, task: Task) -> Task:
        await self._sync.write(COLLECTION, task.id, task.to_dict())
        self._remember([task])
        return task

    # ---- CRUD ----

    async def create(self, data: Mapping[str, Any]) -> Task:
        """
        Create a task, or return (a copy of) the existing one when a duplicate
        already lives in the same section.

        Raises ValidationError for text, duration or sub-task values out of
        bounds, and for a caller-supplied id that is already taken.
        """
        raw = dict(data)
        task = Task.from_raw(raw)
        check_task_limits(
            {
                "text": task.text,
                "estimated_duration": raw.get("estimatedDuration", raw.get("estimated_duration")),
                "sub_tasks": raw.get("subTasks", raw.get("sub_tasks")),
            }
        )
        existing = find_duplicate(task.text, await self.get_by_section(task.section))
        if existing is not None:
            logger.info("Task %r duplicates %s in section %s; returning existing", task.text, existing.id, task.section)
            return dataclasses.replace(existing)

        if raw.get("id") and await self.get(task.id) is not None:
            raise ValidationError(f"Task id {task.id} already exists")

        task.modified_at = task.created_at
        await self._persist(task)
        logger.debug("Task created id=%s section=%s", task.id, task.section)
        return task

    async def get(self, task_id: str) -> Task | None:
        cached = self._cache.get(task_id)
        if cached is not None:
            return cached
        doc = await self._sync.read(COLLECTION, task_id)
        if doc is None:
            return None
        task = Task.from_dict(doc)
        self._remember([task])
        return task

    def _coerce_changes(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        unknown = set(changes) - TASK_FIELDS
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
        blocked = set(changes) & _IMMUTABLE_FIELDS
        if blocked:
            raise ValidationError(f"Read-only task field(s): {', '.join(sorted(blocked))}")

        out = dict(changes)
        if "text" in out:
            out["text"] = str(out["text"] or "").strip()
            if not out["text"]:
                raise ValidationError("Task text is required")
        if "section" in out:
            out["section"] = Section.parse(out["section"])
        if "priority" in out:
            try:
                out["priority"] = Priority(str(out["priority"]).strip().lower())
            except ValueError:
                raise ValidationError(f"Unknown priority: {out['priority']!r}") from None
        if "date" in out:
            out["date"] = sanitize_date(out["date"])
        if "completed" in out:
            out["completed"] = bool(out["completed"])
        check_task_limits(out)
        if "estimated_duration" in out:
            minutes = out["estimated_duration"]
            out["estimated_duration"] = None if minutes in (None, "") else int(float(minutes))
        if "sub_tasks" in out:
            subs = out["sub_tasks"] or []
            out["sub_tasks"] = [subs] if isinstance(subs, str) else list(subs)
        return out

    async def update(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        """
        Merge `changes` (Task attribute names) into the stored task.

        Raises ValidationError, NotFoundError, or DuplicateTaskError when the
        new text collides with another task in the target section.
        """
        patch = self._coerce_changes(changes)
        current = await self.get(task_id)
        if current is None:
            raise NotFoundError(f"Task {task_id} not found")

        updated = dataclasses.replace(current, **patch)
        now = utc_now_iso()

        if "completed" in patch:
            if not updated.completed:
                updated.completed_at = None
            elif not updated.completed_at:
                updated.completed_at = now

        if "text" in patch or "section" in patch:
            clash = find_duplicate(updated.text, await self.get_by_section(updated.section), exclude_id=task_id)
            if clash is not None:
                raise DuplicateTaskError(
                    f"Task text {updated.text!r} duplicates {clash.id} in section {updated.section}",
                    task_id=task_id,
                    existing_id=clash.id,
                )

        updated.modified_at = now
        return await self._persist(updated)

    async def complete(self, task_id: str, completed: bool = True) -> Task:
        return await self.update(task_id, {"completed": completed})

    async def delete(self, task_id: str) -> None:
        await self._sync.remove(COLLECTION, task_id)
        self._cache.remove(task_id)

    # ---- collection reads ----

    async def get_all_paginated(
        self,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: str | None = None,
        order_by: str = "createdAt",
        direction: str = "desc",
        where: tuple[Filter, ...] = (),
    ) -> TaskPage:
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        if direction not in ("asc", "desc"):
            raise ValidationError(f"direction must be 'asc' or 'desc', got {direction!r}")

        query = Query(where=where, order_by=order_by, direction=direction, start_after=cursor, limit=limit + 1)
        page = await self._sync.query(COLLECTION, query)

        docs = page.docs[:limit]
        has_more = len(page.docs) > limit
        tasks = [Task.from_dict(d.data) for d in docs]
        self._remember(tasks)
        next_cursor = encode_cursor(docs[-1], order_by) if has_more else None
        return TaskPage(tasks=tasks, has_more=has_more, cursor=next_cursor)

    async def _collect(self, where: tuple[Filter, ...] = ()) -> list[Task]:
        out: list[Task] = []
        cursor: str | None = None
        while True:
            page = await self.get_all_paginated(limit=self._page_size, cursor=cursor, where=where)
            out.extend(page.tasks)
            if not page.has_more:
                return out
            cursor = page.cursor

    async def get_all(self) -> list[Task]:
        """Full scan, one page at a time. Expensive: prefer get_all_paginated in UI paths."""
        return await self._collect()

    async def get_by_section(self, section: Section | str) -> list[Task]:
        sec = Section.parse(section)
        if self._sync.supports_where:
            return await self._collect((Filter("section", "==", sec.value),))
        return [t for t in await self._collect() if t.section == sec]

    async def get_tasks(
        self,
        *,
        section: Section | str | None = None,
        priority: Priority | str | None = None,
        completed: bool | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        search: str | None = None,
    ) -> list[Task]:
        tasks = await (self.get_by_section(section) if section is not None else self.get_all())

        if priority is not None:
            prio = Priority.from_db(str(priority))
            tasks = [t for t in tasks if t.priority == prio]
        if completed is not None:
            tasks = [t for t in tasks if t.completed == completed]
        if date_from:
            tasks = [t for t in tasks if t.date and t.date >= date_from]
        if date_to:
            tasks = [t for t in tasks if t.date and t.date <= date_to]
        if search:
            needle = search.strip().lower()
            tasks = [t for t in tasks if needle in t.normalized_text]
        return tasks

    async def export_by_section(self) -> dict[str, list[RawTask]]:
        """Group tasks back into the {"todayTasks": [...]} shape a TaskSource produces."""
        out: dict[str, list[RawTask]] = {f"{s.value}Tasks": [] for s in Section}
        for t in await self.get_all():
            out[f"{t.section.value}Tasks"].append(
                {
                    "id": t.id,
                    "text": t.text,
                    "completed": t.completed,
                    "priority": t.priority.value,
                    "date": t.date,
                    "subTasks": list(t.sub_tasks),
                    "details": [dict(d) for d in t.details],
                }
            )
        return out

    # ---- migration ----

    def _acquire_migration_lock(self) -> bool:
        local = self._sync.local
        lock = local.get(MIGRATION_LOCK_KEY)
        if lock is not None:
            try:
                self._check_lock(lock)
            except StaleLockError as e:
                logger.warning("Clearing abandoned migration lock (age=%.0fs)", e.age_seconds)
                local.remove(MIGRATION_LOCK_KEY)
            else:
                return False
        local.set(MIGRATION_LOCK_KEY, {"startedAt": time.time()})
        return True

    def _check_lock(self, lock: Mapping[str, Any]) -> None:
        try:
            started = float(lock.get("startedAt") or 0.0)
        except (TypeError, ValueError):
            started = 0.0
        age = time.time() - started
        if age > self._lock_stale_seconds:
            raise StaleLockError(f"Migration lock is {age:.0f}s old", age_seconds=age)

    async def migrate_batch(self, records: Mapping[str, list[RawTask]]) -> MigrationResult:
        """
        Import raw tasks grouped by source section.

        Records whose id already exists, or whose normalized (section, text)
        already exists, are skipped, so re-running after a partial failure is
        safe. Records without an id get a content-derived one for the same reason.
        Per-record failures are collected into the result; this never raises
        for them.
        """
        result = MigrationResult()
        if not self._acquire_migration_lock():
            logger.warning("Migration already in progress; skipping")
            result.locked = True
            return result

        try:
            existing = await self.get_all()
            known_ids = {t.id for t in existing}
            known_pairs = {(t.section.value, t.normalized_text) for t in existing}

            chunk_size = min(self._migration_batch_size, self._sync.max_batch_size)
            chunk: list[Task] = []
            now = utc_now_iso()

            for section_name, raw_list in records.items():
                stats = result.sections.setdefault(section_name, SectionStats())
                stats.total += len(raw_list or [])

                for raw in raw_list or []:
                    record_id = str(raw.get("id") or "") if isinstance(raw, dict) else None
                    try:
                        task = Task.from_raw(raw, section_hint=section_name, now=now)
                    except ValidationError as e:
                        err = MigrationError(str(e), record_id=record_id, section=section_name)
                        result.errors.append(err)
                        stats.errors += 1
                        logger.warning("Migration skipped bad record section=%s id=%s: %s", section_name, record_id, e)
                        continue

                    if not record_id:
                        task.id = content_task_id(task.section, task.text)

                    pair = (task.section.value, task.normalized_text)
                    if task.id in known_ids or pair in known_pairs:
                        stats.skipped += 1
                        result.skipped += 1
                        continue

                    known_ids.add(task.id)
                    known_pairs.add(pair)
                    chunk.append(task)
                    stats.migrated += 1
                    result.migrated += 1

                    if len(chunk) >= chunk_size:
                        await self._flush(chunk)
                        chunk = []

            if chunk:
                await self._flush(chunk)

            self._sync.local.set(MIGRATION_STATUS_KEY, {"completedAt": utc_now_iso(), **result.to_dict()})
        finally:
            self._sync.local.remove(MIGRATION_LOCK_KEY)

        logger.info(
            "Migration finished migrated=%d skipped=%d errors=%d",
            result.migrated,
            result.skipped,
            result.errored,
        )
        return result

    async def _flush(self, chunk: list[Task]) -> None:
        synced = await self._sync.write_many(COLLECTION, [(t.id, t.to_dict()) for t in chunk])
        self._remember(chunk)
        logger.debug("Migration chunk written size=%d synced=%d", len(chunk), synced)

    async def migrate_from_source(self, source: TaskSource) -> MigrationResult:
        return await self.migrate_batch(source.load_raw_tasks())

    def migration_status(self) -> dict[str, Any] | None:
        return self._sync.local.get(MIGRATION_STATUS_KEY)

    # ---- dedup ----

    async def deduplicate(self) -> DedupResult:
        """
        Collapse tasks sharing a normalized (section, text) onto one survivor.

        Survivor: completed first, then more sub-tasks + reminders, then the
        earliest createdAt. Running it twice removes nothing the second time.
        """
        tasks = await self.get_all()
        result = DedupResult(scanned=len(tasks))

        for (section, _), group in group_exact(tasks).items():
            if len(group) < 2:
                continue
            survivor = pick_survivor(group)
            for t in group:
                if t.id == survivor.id:
                    continue
                try:
                    await self.delete(t.id)
                except SecretaryError as e:
                    logger.exception("Dedup failed to delete %s", t.id)
                    result.errors.append(f"{t.id}: {e}")
                    continue
                result.removed += 1
            logger.info("Dedup kept %s in %s, dropped %d", survivor.id, section, len(group) - 1)

        result.remaining = result.scanned - result.removed
        self._sync.local.set(LAST_DEDUP_KEY, {"at": time.time(), "removed": result.removed})
        return result

    async def deduplicate_if_due(self, min_interval_hours: float = 24.0) -> DedupResult | None:
        """Run deduplicate() unless it already ran within the interval."""
        last = self._sync.local.get(LAST_DEDUP_KEY) or {}
        try:
            last_at = float(last.get("at") or 0.0)
        except (TypeError, ValueError):
            last_at = 0.0
        if time.time() - last_at < min_interval_hours * 3600:
            logger.debug("Dedup not due yet")
            return None
        return await self.deduplicate()
