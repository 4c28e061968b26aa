# src/secretary_sync/schedules/schedule_repository.py

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..cache.bounded import BoundedCache
from ..core.errors import ValidationError
from ..core.timeutil import day_key, shift_day, today_key, utc_now_iso
from ..remote.query import KEY_FIELD, Filter, Query
from ..sync.coordinator import SyncCoordinator
from ..tasks.task_models import Priority, Section, Task, content_task_id, normalize_text
from .patterns import CompletionPatterns, analyze_completion_patterns
from .schedule_models import CompletionSnapshot, HistoryRecord, Schedule, ScheduleItem
from .workload import (
    DEFAULT_ITEM_MINUTES,
    UNBALANCED_SPREAD_HOURS,
    WORKDAY_HOURS,
    DailyCapacity,
    DayContext,
    MultiDayContext,
    calculate_daily_capacity,
    distribution_row,
    parse_duration_minutes,
    summarize_workload,
)

logger = logging.getLogger(__name__)

SCHEDULES = "schedules"
HISTORY = "history"

DEFAULT_HISTORY_VERSIONS = 20


@dataclass(slots=True)
class HistoryPage:
    records: list[HistoryRecord]
    total: int
    has_more: bool


def _detached(schedule: Schedule) -> Schedule:
    """Copy whose items can be changed without touching cached records."""
    return dataclasses.replace(schedule, items=[dataclasses.replace(i) for i in schedule.items])

def merge_rollover_tasks(tasks: list[Task], rollovers: list[ScheduleItem]) -> list[Task]:
    """
    Append rollover items to a day's task list, skipping any whose normalized
    text already appears in it. Rollovers become today-section tasks tagged
    with a {"type": "rollover"} detail.
    """
    seen = {t.normalized_text for t in tasks}
    merged = list(tasks)
    now = utc_now_iso()
    for item in rollovers:
        text = normalize_text(item.task)
        if not text or text in seen:
            continue
        seen.add(text)
        merged.append(
            Task(
                id=item.id or content_task_id(Section.TODAY, item.task),
                text=item.task.strip(),
                section=Section.TODAY,
                priority=item.priority,
                details=[{"type": "rollover", "rolloverFrom": item.rollover_from, "category": item.category}],
                created_at=now,
                modified_at=now,
                estimated_duration=parse_duration_minutes(item.duration) if item.duration else None,
            )
        )
    return merged


class ScheduleRepository:
    """
    Daily schedules ("current", one per date) plus their history records.

    Every save writes both: the current record and a history record holding
    the same schedule, its completion snapshot and a list of the versions it
    superseded.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        schedule_cache: BoundedCache[str, Schedule],
        history_cache: BoundedCache[str, HistoryRecord],
        *,
        workday_hours: float = WORKDAY_HOURS,
        default_item_minutes: int = DEFAULT_ITEM_MINUTES,
        max_history_versions: int = DEFAULT_HISTORY_VERSIONS,
    ) -> None:
        self._sync = coordinator
        self._schedules = schedule_cache
        self._history = history_cache
        self._workday_hours = float(workday_hours)
        self._default_item_minutes = int(default_item_minutes)
        self._max_versions = max(0, int(max_history_versions))

    @property
    def schedule_cache(self) -> BoundedCache[str, Schedule]:
        return self._schedules

    @property
    def history_cache(self) -> BoundedCache[str, HistoryRecord]:
        return self._history

    def _remember_schedule(self, schedule: Schedule) -> None:
        self._schedules.set(schedule.date, schedule)
        self._schedules.evict_overflow()

    def _remember_history(self, records: list[HistoryRecord]) -> None:
        for r in records:
            self._history.set(r.date, r)
        self._history.evict_overflow()

    def derive_metadata(self, schedule: Schedule) -> dict[str, Any]:
        categories: list[str] = []
        for item in schedule.items:
            if item.category and item.category not in categories:
                categories.append(item.category)
        return {
            "taskCount": len(schedule.items),
            "hasHighPriority": any(i.priority == Priority.HIGH for i in schedule.items),
            "categories": categories,
            "estimatedDuration": self.calculate_daily_capacity(schedule).total_minutes,
        }

    # ---- save / load ----

    async def save(
        self,
        date: str,
        schedule_data: Schedule | Mapping[str, Any],
        completion: CompletionSnapshot | Mapping[str, Any] | None = None,
    ) -> Schedule:
        """
        Save the current schedule for `date` and its history record.

        The version is one past the previously saved one. Derived metadata keys
        overwrite any supplied under the same name. Without `completion` the
        snapshot is computed from the items' own completed flags.
        """
        key = day_key(date)
        if isinstance(schedule_data, Schedule):
            schedule = schedule_data
        elif isinstance(schedule_data, Mapping):
            schedule = Schedule.from_dict(dict(schedule_data), date=key)
        else:
            raise ValidationError(f"Schedule data must be a mapping, got {type(schedule_data).__name__}")
        schedule.date = key

        previous = await self.get_history_record(key)
        prev_version = previous.schedule.version if previous is not None else 0

        now = utc_now_iso()
        schedule.version = prev_version + 1
        schedule.saved_at = now
        schedule.generated_at = schedule.generated_at or now
        schedule.metadata = {**schedule.metadata, **self.derive_metadata(schedule)}

        if completion is None:
            snapshot = CompletionSnapshot.from_schedule(schedule)
        elif isinstance(completion, CompletionSnapshot):
            snapshot = completion
        else:
            snapshot = CompletionSnapshot.from_dict(dict(completion))

        versions: list[dict[str, Any]] = []
        if previous is not None:
            versions = previous.previous_versions + [
                {
                    "version": previous.schedule.version,
                    "savedAt": previous.schedule.saved_at,
                    "summary": previous.schedule.summary,
                    "schedule": [i.to_dict() for i in previous.schedule.items],
                    "completion": previous.completion.to_dict(),
                }
            ]
            if self._max_versions:
                versions = versions[-self._max_versions :]
            else:
                versions = []

        record = HistoryRecord(
            schedule=_detached(schedule),
            completion=snapshot,
            history_saved_at=now,
            previous_versions=versions,
        )

        await asyncio.gather(
            self._sync.write(SCHEDULES, key, schedule.to_dict()),
            self._sync.write(HISTORY, key, record.to_dict()),
        )

        self._remember_schedule(schedule)
        self._remember_history([record])
        logger.info("Schedule saved date=%s version=%d items=%d", key, schedule.version, len(schedule.items))
        return schedule

    async def load(self, date: str) -> Schedule | None:
        """Current schedule for `date`, else the schedule kept in its history record."""
        key = day_key(date)
        cached = self._schedules.get(key)
        if cached is not None:
            return cached

        doc = await self._sync.read(SCHEDULES, key)
        if doc is not None:
            schedule = Schedule.from_dict(doc, date=key)
            self._remember_schedule(schedule)
            return schedule

        record = await self.get_history_record(key)
        if record is not None:
            logger.debug("No current schedule for %s; serving history copy", key)
            return _detached(record.schedule)
        return None

    async def get_history_record(self, date: str) -> HistoryRecord | None:
        key = day_key(date)
        cached = self._history.get(key)
        if cached is not None:
            return cached
        doc = await self._sync.read(HISTORY, key)
        if doc is None:
            return None
        record = HistoryRecord.from_dict(doc, date=key)
        self._remember_history([record])
        return record

    async def get_history(
        self,
        start_date: str,
        end_date: str,
        *,
        limit: int = 30,
        offset: int = 0,
    ) -> HistoryPage:
        """History records with start_date <= date <= end_date, newest first."""
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        if offset < 0:
            raise ValidationError("offset must be >= 0")
        start, end = day_key(start_date), day_key(end_date)

        query = Query(
            where=(Filter(KEY_FIELD, ">=", start), Filter(KEY_FIELD, "<=", end)),
            order_by=KEY_FIELD,
            direction="desc",
        )
        page = await self._sync.query(HISTORY, query)
        total = len(page.docs)
        window = page.docs[offset : offset + limit]
        records = [HistoryRecord.from_dict(d.data, date=d.key) for d in window]
        self._remember_history(records)
        return HistoryPage(records=records, total=total, has_more=offset + len(window) < total)

    async def iter_history(self, start_date: str, end_date: str, *, page_size: int = 100) -> list[HistoryRecord]:
        out: list[HistoryRecord] = []
        offset = 0
        while True:
            page = await self.get_history(start_date, end_date, limit=page_size, offset=offset)
            out.extend(page.records)
            if not page.has_more:
                return out
            offset += len(page.records)

    # ---- completion ----

    @staticmethod
    def _find_item(schedule: Schedule, task_id: str) -> ScheduleItem | None:
        for item in schedule.items:
            if item.id and item.id == task_id:
                return item
        # Legacy schedules have no item ids; callers pass (part of) the item text.
        needle = normalize_text(task_id)
        if not needle:
            return None
        for item in schedule.items:
            if needle in normalize_text(item.task):
                return item
        return None

    async def update_task_completion(
        self,
        date: str,
        task_id: str,
        completed: bool,
        actual_duration: int | None = None,
    ) -> CompletionSnapshot | None:
        """
        Flip one item's completion and re-save the schedule.

        Returns None without saving when there is no schedule or no matching item.
        """
        key = day_key(date)
        loaded = await self.load(key)
        schedule = _detached(loaded) if loaded is not None else None
        if schedule is None:
            logger.warning("No schedule for %s; cannot update completion of %s", key, task_id)
            return None

        item = self._find_item(schedule, task_id)
        if item is None:
            logger.warning("No item matching %r in schedule %s", task_id, key)
            return None

        item.completed = bool(completed)
        item.completed_at = utc_now_iso() if completed else None
        if actual_duration is not None:
            item.actual_duration = int(actual_duration)

        snapshot = CompletionSnapshot.from_schedule(schedule)
        await self.save(key, schedule, snapshot)
        return snapshot

    # ---- rollover ----

    async def get_incomplete_tasks(self, date: str) -> list[ScheduleItem]:
        """Incomplete, non-recurring items of `date`, tagged as rollovers from it."""
        key = day_key(date)
        schedule = await self.load(key)
        if schedule is None:
            return []
        return [
            dataclasses.replace(item, is_rollover=True, rollover_from=key, extra=dict(item.extra))
            for item in schedule.items
            if not item.completed and not item.is_recurring
        ]

    async def check_for_rollovers(self, current_date: str) -> list[ScheduleItem]:
        return await self.get_incomplete_tasks(shift_day(current_date, -1))

    # ---- workload ----

    def calculate_daily_capacity(self, schedule: Schedule | None) -> DailyCapacity:
        return calculate_daily_capacity(
            schedule,
            workday_hours=self._workday_hours,
            default_item_minutes=self._default_item_minutes,
        )

    async def load_multi_day_context(
        self,
        current_date: str,
        days_before: int = 2,
        days_after: int = 3,
    ) -> MultiDayContext:
        """Read-only window [current - days_before, current + days_after], loaded in parallel."""
        if days_before < 0 or days_after < 0:
            raise ValidationError("days_before and days_after must be >= 0")
        current = day_key(current_date)
        offsets = list(range(-days_before, days_after + 1))
        keys = [shift_day(current, off) for off in offsets]
        schedules = await asyncio.gather(*(self.load(k) for k in keys))

        days: list[DayContext] = []
        for off, key, schedule in zip(offsets, keys, schedules):
            capacity = self.calculate_daily_capacity(schedule or Schedule(date=key))
            rate = CompletionSnapshot.from_schedule(schedule).completion_rate if schedule and schedule.items else None
            days.append(DayContext(date=key, offset=off, schedule=schedule, capacity=capacity, completion_rate=rate))

        past = [d for d in days if d.offset < 0 and d.schedule is not None]
        rates = [d.completion_rate for d in past if d.completion_rate is not None]
        avg_rate = round(sum(rates) / len(rates), 1) if rates else 0.0
        avg_hours = round(sum(d.capacity.total_hours for d in past) / len(past), 2) if past else 0.0

        return MultiDayContext(
            current_date=current,
            days=days,
            average_completion_rate=avg_rate,
            average_hours=avg_hours,
            workload=summarize_workload([d.capacity for d in days], spread_threshold_hours=UNBALANCED_SPREAD_HOURS),
            distribution=[
                distribution_row(
                    d.capacity,
                    offset=d.offset,
                    has_schedule=d.schedule is not None,
                    workday_hours=self._workday_hours,
                )
                for d in days
            ],
        )

    # ---- analytics / maintenance ----

    async def analyze_completion_patterns(self, *, today: str | None = None, days: int = 30) -> CompletionPatterns:
        """Completion patterns over the history records of the last `days` days, `today` included."""
        if days < 1:
            raise ValidationError("days must be >= 1")
        end = day_key(today or today_key())
        records = await self.iter_history(shift_day(end, -days), end)
        patterns = analyze_completion_patterns(records)
        logger.debug("Analyzed %d history days ending %s", patterns.sample_size, end)
        return patterns

    async def get_completion_stats(self, start_date: str, end_date: str) -> dict[str, Any]:
        records = await self.iter_history(start_date, end_date)
        stats: dict[str, Any] = {
            "totalDays": len(records),
            "totalTasks": 0,
            "completedTasks": 0,
            "averageCompletionRate": 0.0,
            "dailyStats": [],
            "categoryStats": {},
            "priorityStats": {p.value: 0 for p in Priority},
            "timeStats": {"totalEstimated": 0, "totalActual": 0, "averageTaskDuration": 0.0},
        }

        for record in records:
            stats["totalTasks"] += record.completion.total_tasks
            stats["completedTasks"] += record.completion.completed_count
            stats["dailyStats"].append(
                {
                    "date": record.date,
                    "totalTasks": record.completion.total_tasks,
                    "completedTasks": record.completion.completed_count,
                    "completionRate": record.completion.completion_rate,
                }
            )
            for item in record.schedule.items:
                if item.category:
                    cat = stats["categoryStats"].setdefault(item.category, {"total": 0, "completed": 0})
                    cat["total"] += 1
                    if item.completed:
                        cat["completed"] += 1
                stats["priorityStats"][item.priority.value] += 1
                stats["timeStats"]["totalEstimated"] += parse_duration_minutes(item.duration, self._default_item_minutes)
                stats["timeStats"]["totalActual"] += item.actual_duration or 0

        if stats["totalTasks"]:
            stats["averageCompletionRate"] = round(stats["completedTasks"] / stats["totalTasks"] * 100.0, 1)
            stats["timeStats"]["averageTaskDuration"] = round(
                stats["timeStats"]["totalEstimated"] / stats["totalTasks"], 1
            )
        return stats

    async def cleanup_old_history(self, days_to_keep: int = 90, *, today: str | None = None) -> int:
        """Delete history records older than `days_to_keep` days. Returns how many were removed."""
        cutoff = shift_day(today or today_key(), -int(days_to_keep))
        page = await self._sync.query(HISTORY, Query(where=(Filter(KEY_FIELD, "<", cutoff),)))
        keys = [d.key for d in page.docs]
        await asyncio.gather(*(self._sync.remove(HISTORY, k) for k in keys))
        for k in keys:
            self._history.remove(k)
        if keys:
            logger.info("Removed %d history records older than %s", len(keys), cutoff)
        return len(keys)
