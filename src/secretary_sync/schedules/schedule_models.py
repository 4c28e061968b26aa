# src/secretary_sync/schedules/schedule_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.task_models import Priority

RECURRING_CATEGORY_MARKERS = ("daily", "weekly", "monthly")

# Keys of a history record that are not part of the schedule itself.
HISTORY_ONLY_KEYS = frozenset({"historySavedAt", "completion", "analytics", "previousVersions"})

_ITEM_KEYS = frozenset(
    {
        "id",
        "time",
        "task",
        "text",
        "duration",
        "priority",
        "category",
        "completed",
        "completedAt",
        "actualDuration",
        "isRollover",
        "rolloverFrom",
    }
)

_SCHEDULE_KEYS = frozenset({"date", "schedule", "summary", "generatedAt", "savedAt", "version", "metadata"})


def _opt_int(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class ScheduleItem:
    task: str
    time: str = ""
    id: str | None = None
    duration: str | None = None
    priority: Priority = Priority.MEDIUM
    category: str = ""
    completed: bool = False
    completed_at: str | None = None
    actual_duration: int | None = None
    is_rollover: bool = False
    rollover_from: str | None = None
    # Fields added by a schedule generator that we do not model, kept verbatim.
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_recurring(self) -> bool:
        cat = (self.category or "").lower()
        return any(marker in cat for marker in RECURRING_CATEGORY_MARKERS)

    def completion_key(self, index: int) -> str:
        return self.id or f"task-{index}"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out.update(
            {
                "id": self.id,
                "time": self.time,
                "task": self.task,
                "duration": self.duration,
                "priority": self.priority.value,
                "category": self.category,
                "completed": self.completed,
                "completedAt": self.completed_at,
                "actualDuration": self.actual_duration,
            }
        )
        if self.is_rollover:
            out["isRollover"] = True
            out["rolloverFrom"] = self.rollover_from
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleItem:
        return cls(
            task=str(data.get("task") or data.get("text") or ""),
            time=str(data.get("time") or ""),
            id=(str(data["id"]) if data.get("id") else None),
            duration=(str(data["duration"]) if data.get("duration") not in (None, "") else None),
            priority=Priority.from_db(data.get("priority")),
            category=str(data.get("category") or ""),
            completed=bool(data.get("completed", False)),
            completed_at=data.get("completedAt") or None,
            actual_duration=_opt_int(data.get("actualDuration")),
            is_rollover=bool(data.get("isRollover", False)),
            rollover_from=data.get("rolloverFrom") or None,
            extra={k: v for k, v in data.items() if k not in _ITEM_KEYS},
        )


@dataclass(slots=True)
class Schedule:
    date: str
    items: list[ScheduleItem] = field(default_factory=list)
    summary: str = ""
    generated_at: str | None = None
    saved_at: str | None = None
    version: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out.update(
            {
                "date": self.date,
                "schedule": [i.to_dict() for i in self.items],
                "summary": self.summary,
                "generatedAt": self.generated_at,
                "savedAt": self.saved_at,
                "version": self.version,
                "metadata": dict(self.metadata),
            }
        )
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, date: str | None = None) -> Schedule:
        """
        Accepts a stored schedule, a history record or a generator result
        ({"schedule": [...], "summary": ...}); history-only keys are dropped.
        """
        raw_items = data.get("schedule") or data.get("items") or []
        return cls(
            date=str(date or data.get("date") or ""),
            items=[ScheduleItem.from_dict(i) for i in raw_items if isinstance(i, dict)],
            summary=str(data.get("summary") or ""),
            generated_at=data.get("generatedAt") or None,
            saved_at=data.get("savedAt") or None,
            version=int(data.get("version") or 0),
            metadata=dict(data.get("metadata") or {}),
            extra={
                k: v
                for k, v in data.items()
                if k not in _SCHEDULE_KEYS and k not in HISTORY_ONLY_KEYS and k != "items"
            },
        )


@dataclass(slots=True)
class CompletionSnapshot:
    total_tasks: int = 0
    completed_count: int = 0
    completion_rate: float = 0.0
    total_time_spent: int = 0
    tasks_by_id: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> CompletionSnapshot:
        items = schedule.items
        done = [i for i in items if i.completed]
        return cls(
            total_tasks=len(items),
            completed_count=len(done),
            completion_rate=(len(done) / len(items) * 100.0) if items else 0.0,
            total_time_spent=sum(i.actual_duration or 0 for i in done),
            tasks_by_id={
                item.completion_key(idx): {
                    "completed": item.completed,
                    "completedAt": item.completed_at,
                    "actualDuration": item.actual_duration,
                }
                for idx, item in enumerate(items)
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTasks": self.total_tasks,
            "completedCount": self.completed_count,
            "completionRate": self.completion_rate,
            "totalTimeSpent": self.total_time_spent,
            "tasksById": {k: dict(v) for k, v in self.tasks_by_id.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompletionSnapshot:
        total = int(data.get("totalTasks") or 0)
        completed = int(data.get("completedCount") or 0)
        rate = data.get("completionRate")
        return cls(
            total_tasks=total,
            completed_count=completed,
            completion_rate=float(rate) if rate is not None else ((completed / total * 100.0) if total else 0.0),
            total_time_spent=int(data.get("totalTimeSpent") or 0),
            tasks_by_id={str(k): dict(v) for k, v in (data.get("tasksById") or {}).items()},
        )


@dataclass(slots=True)
class HistoryRecord:
    schedule: Schedule
    completion: CompletionSnapshot
    history_saved_at: str | None = None
    previous_versions: list[dict[str, Any]] = field(default_factory=list)

    @property
    def date(self) -> str:
        return self.schedule.date

    def analytics(self) -> dict[str, Any]:
        return {
            "totalTasks": self.completion.total_tasks,
            "completedTasks": self.completion.completed_count,
            "completionRate": self.completion.completion_rate,
            "timeSpent": self.completion.total_time_spent,
        }

    def to_dict(self) -> dict[str, Any]:
        out = self.schedule.to_dict()
        out.update(
            {
                "historySavedAt": self.history_saved_at,
                "completion": self.completion.to_dict(),
                "analytics": self.analytics(),
                "previousVersions": [dict(v) for v in self.previous_versions],
            }
        )
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, date: str | None = None) -> HistoryRecord:
        schedule = Schedule.from_dict(data, date=date)
        completion_raw = data.get("completion")
        return cls(
            schedule=schedule,
            completion=(
                CompletionSnapshot.from_dict(completion_raw)
                if isinstance(completion_raw, dict)
                else CompletionSnapshot.from_schedule(schedule)
            ),
            history_saved_at=data.get("historySavedAt") or None,
            previous_versions=[dict(v) for v in data.get("previousVersions") or [] if isinstance(v, dict)],
        )
