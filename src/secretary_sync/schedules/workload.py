# src/secretary_sync/schedules/workload.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .schedule_models import Schedule

DEFAULT_ITEM_MINUTES = 30
WORKDAY_HOURS = 8.0
UNBALANCED_SPREAD_HOURS = 4.0

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(hours?|hrs?|h|minutes?|mins?|m)(?![a-z])", re.IGNORECASE)


def parse_duration_minutes(raw: Any, default: int = DEFAULT_ITEM_MINUTES) -> int:
    """
    "45 minutes" -> 45, "2 hours" -> 120, "1.5h" -> 90, "1h30m" -> 60.

    Bare numbers are minutes. Only the first value/unit pair counts.
    Missing or unparsable durations fall back to `default`.
    """
    if raw is None or raw == "":
        return default
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return int(raw) if raw > 0 else default

    s = str(raw).strip()
    m = _DURATION_RE.search(s)
    if m is None:
        try:
            val = float(s)
        except ValueError:
            return default
        return int(val) if val > 0 else default

    value = float(m.group(1))
    unit = m.group(2).lower()
    minutes = value * 60 if unit.startswith("h") else value
    return int(round(minutes)) if minutes > 0 else default


@dataclass(slots=True)
class DailyCapacity:
    date: str
    item_count: int
    total_minutes: int
    total_hours: float
    by_category: dict[str, int] = field(default_factory=dict)
    is_overloaded: bool = False
    capacity_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "itemCount": self.item_count,
            "totalMinutes": self.total_minutes,
            "totalHours": self.total_hours,
            "byCategory": dict(self.by_category),
            "isOverloaded": self.is_overloaded,
            "capacityPercent": self.capacity_percent,
        }


def calculate_daily_capacity(
    schedule: Schedule | None,
    *,
    workday_hours: float = WORKDAY_HOURS,
    default_item_minutes: int = DEFAULT_ITEM_MINUTES,
) -> DailyCapacity:
    if schedule is None:
        return DailyCapacity(date="", item_count=0, total_minutes=0, total_hours=0.0)

    by_category: dict[str, int] = {}
    total = 0
    for item in schedule.items:
        minutes = parse_duration_minutes(item.duration, default_item_minutes)
        total += minutes
        cat = item.category or "uncategorized"
        by_category[cat] = by_category.get(cat, 0) + minutes

    hours = round(total / 60.0, 2)
    return DailyCapacity(
        date=schedule.date,
        item_count=len(schedule.items),
        total_minutes=total,
        total_hours=hours,
        by_category=by_category,
        is_overloaded=hours > workday_hours,
        capacity_percent=round(total / (workday_hours * 60.0) * 100.0, 1) if workday_hours > 0 else 0.0,
    )


@dataclass(slots=True)
class WorkloadSummary:
    total_hours: float = 0.0
    max_hours: float = 0.0
    min_hours: float = 0.0
    spread_hours: float = 0.0
    overloaded_days: list[str] = field(default_factory=list)
    unbalanced: bool = False
    heavy_days: list[str] = field(default_factory=list)
    light_days: list[str] = field(default_factory=list)


def summarize_workload(
    capacities: list[DailyCapacity],
    *,
    spread_threshold_hours: float = UNBALANCED_SPREAD_HOURS,
) -> WorkloadSummary:
    """
    Window-wide workload view.

    The window is unbalanced when max - min hours exceeds the threshold. In that
    case a day is "heavy" when it sits more than the threshold above the
    lightest day and "light" when it sits more than the threshold below the
    heaviest one.
    """
    if not capacities:
        return WorkloadSummary()

    hours = [c.total_hours for c in capacities]
    hi, lo = max(hours), min(hours)
    summary = WorkloadSummary(
        total_hours=round(sum(hours), 2),
        max_hours=hi,
        min_hours=lo,
        spread_hours=round(hi - lo, 2),
        overloaded_days=[c.date for c in capacities if c.is_overloaded],
    )
    if summary.spread_hours > spread_threshold_hours:
        summary.unbalanced = True
        summary.heavy_days = [c.date for c in capacities if c.total_hours - lo > spread_threshold_hours]
        summary.light_days = [c.date for c in capacities if hi - c.total_hours > spread_threshold_hours]
    return summary


def distribution_row(capacity: DailyCapacity, *, offset: int, has_schedule: bool, workday_hours: float) -> dict[str, Any]:
    """One row of the per-day table handed to a schedule generator."""
    day = date.fromisoformat(capacity.date)
    return {
        "date": capacity.date,
        "dayOfWeek": day.strftime("%A"),
        "offset": offset,
        "hasSchedule": has_schedule,
        "taskCount": capacity.item_count,
        "hours": capacity.total_hours,
        "remainingHours": round(max(0.0, workday_hours - capacity.total_hours), 2),
        "isOverloaded": capacity.is_overloaded,
    }


@dataclass(slots=True)
class DayContext:
    date: str
    offset: int
    schedule: Schedule | None
    capacity: DailyCapacity
    completion_rate: float | None = None


@dataclass(slots=True)
class MultiDayContext:
    current_date: str
    days: list[DayContext]
    average_completion_rate: float
    average_hours: float
    workload: WorkloadSummary
    distribution: list[dict[str, Any]]
    # Generator view of CompletionPatterns, when attached by the caller.
    patterns: dict[str, Any] | None = None

    @property
    def past_days(self) -> list[DayContext]:
        return [d for d in self.days if d.offset < 0]

    @property
    def upcoming_days(self) -> list[DayContext]:
        return [d for d in self.days if d.offset > 0]

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON view for schedule generators."""
        return {
            "currentDate": self.current_date,
            "averageCompletionRate": self.average_completion_rate,
            "averageHours": self.average_hours,
            "workload": {
                "totalHours": self.workload.total_hours,
                "spreadHours": self.workload.spread_hours,
                "overloadedDays": list(self.workload.overloaded_days),
                "unbalanced": self.workload.unbalanced,
                "heavyDays": list(self.workload.heavy_days),
                "lightDays": list(self.workload.light_days),
            },
            "previousSchedules": [
                {
                    "date": d.date,
                    "tasks": [{"text": i.task, "completed": i.completed} for i in d.schedule.items],
                }
                for d in self.past_days
                if d.schedule is not None
            ],
            "distribution": [dict(r) for r in self.distribution],
            **({"patterns": dict(self.patterns)} if self.patterns else {}),
        }
