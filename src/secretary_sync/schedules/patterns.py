# src/secretary_sync/schedules/patterns.py

"""
Completion patterns mined from schedule history.

Items are bucketed by time of day, weekday, category and priority, and
estimated durations are compared with recorded actual durations. The result
is summarized for schedule generators by `CompletionPatterns.for_generator()`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..tasks.task_models import Priority
from .schedule_models import HistoryRecord
from .workload import parse_duration_minutes

# (name, first hour, end hour); anything outside these is "night".
TIME_PERIODS = (("morning", 6, 12), ("afternoon", 12, 17), ("evening", 17, 22))
NIGHT = "night"
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

ACCURACY_MARGIN = 0.2
MIN_PERIOD_SAMPLES = 5
MIN_DAY_SAMPLES = 3


def time_of_day(raw: str | None) -> str | None:
    """Map "HH:MM" to a period name; None for missing or unreadable times."""
    if not raw:
        return None
    try:
        hour = int(str(raw).strip().split(":", 1)[0])
    except ValueError:
        return None
    for name, start, end in TIME_PERIODS:
        if start <= hour < end:
            return name
    return NIGHT


@dataclass(slots=True)
class CompletionCount:
    total: int = 0
    completed: int = 0

    def add(self, completed: bool) -> None:
        self.total += 1
        if completed:
            self.completed += 1

    @property
    def rate(self) -> int:
        return round(self.completed / self.total * 100) if self.total else 0

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "completed": self.completed, "completionRate": self.rate}


def _counts(names: Iterable[str]) -> dict[str, CompletionCount]:
    return {n: CompletionCount() for n in names}


@dataclass(slots=True)
class DurationAccuracy:
    accurate: int = 0
    underestimated: int = 0
    overestimated: int = 0

    @property
    def total(self) -> int:
        return self.accurate + self.underestimated + self.overestimated

    def share(self, n: int) -> int:
        return round(n / self.total * 100) if self.total else 0

    def to_dict(self) -> dict[str, int]:
        return {
            "accurate": self.accurate,
            "underestimated": self.underestimated,
            "overestimated": self.overestimated,
            "accuracyRate": self.share(self.accurate),
            "underestimatedRate": self.share(self.underestimated),
            "overestimatedRate": self.share(self.overestimated),
        }


@dataclass(slots=True)
class CompletionPatterns:
    sample_size: int = 0
    time_of_day: dict[str, CompletionCount] = field(
        default_factory=lambda: _counts([p[0] for p in TIME_PERIODS] + [NIGHT])
    )
    day_of_week: dict[str, CompletionCount] = field(default_factory=lambda: _counts(WEEKDAYS))
    categories: dict[str, CompletionCount] = field(default_factory=dict)
    priorities: dict[str, CompletionCount] = field(default_factory=lambda: _counts(p.value for p in Priority))
    durations: DurationAccuracy = field(default_factory=DurationAccuracy)
    total_tasks: int = 0
    completed_tasks: int = 0
    hours_scheduled: float = 0.0
    hours_actual: float = 0.0

    @property
    def completion_rate(self) -> int:
        return round(self.completed_tasks / self.total_tasks * 100) if self.total_tasks else 0

    @staticmethod
    def _extreme(buckets: dict[str, CompletionCount], min_samples: int, *, best: bool) -> str | None:
        eligible = [(name, c) for name, c in buckets.items() if c.total >= min_samples]
        if not eligible:
            return None
        pick = max if best else min
        return pick(eligible, key=lambda nc: nc[1].rate)[0]

    def best_time(self) -> str | None:
        return self._extreme(self.time_of_day, MIN_PERIOD_SAMPLES, best=True)

    def worst_time(self) -> str | None:
        return self._extreme(self.time_of_day, MIN_PERIOD_SAMPLES, best=False)

    def best_day(self) -> str | None:
        return self._extreme(self.day_of_week, MIN_DAY_SAMPLES, best=True)

    def worst_day(self) -> str | None:
        return self._extreme(self.day_of_week, MIN_DAY_SAMPLES, best=False)

    def recommendations(self) -> list[dict[str, str]]:
        out: list[dict[str, str]] = []
        best = self.best_time()
        if best:
            rate = self.time_of_day[best].rate
            out.append(
                {
                    "type": "productivity",
                    "message": f"Schedule important tasks in the {best}: {rate}% of tasks get done then",
                }
            )
        worst_day = self.worst_day()
        if worst_day and self.day_of_week[worst_day].rate < 50:
            rate = self.day_of_week[worst_day].rate
            out.append(
                {
                    "type": "planning",
                    "message": f"Plan a lighter load on {worst_day}s: completion is only {rate}%",
                }
            )
        if self.durations.share(self.durations.underestimated) > 40:
            out.append(
                {
                    "type": "estimation",
                    "message": "Durations tend to be underestimated; add 20-30% buffer time",
                }
            )
        high = self.priorities[Priority.HIGH.value]
        if high.total > 10 and high.rate < 70:
            out.append(
                {
                    "type": "priority",
                    "message": f"Only {high.rate}% of high-priority tasks get done; schedule fewer or give them more time",
                }
            )
        if self.total_tasks and self.completion_rate < 60:
            out.append(
                {
                    "type": "workload",
                    "message": f"Overall completion is {self.completion_rate}%; consider fewer tasks per day",
                }
            )
        return out

    def for_generator(self) -> dict[str, Any]:
        """Compact view handed to schedule generators as planning context."""
        best, worst = self.best_time(), self.worst_time()
        return {
            "sampleDays": self.sample_size,
            "bestProductiveHours": f"{best} ({self.time_of_day[best].rate}% completion)" if best else None,
            "worstProductiveHours": f"{worst} ({self.time_of_day[worst].rate}% completion)" if worst else None,
            "averageCompletion": self.completion_rate,
            "averageTasksCompleted": round(self.completed_tasks / max(1, self.sample_size)),
            "durationAccuracy": self.durations.to_dict(),
            "recommendations": [r["message"] for r in self.recommendations()],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "sampleSize": self.sample_size,
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
            "completionRate": self.completion_rate,
            "hoursScheduled": round(self.hours_scheduled, 2),
            "hoursActual": round(self.hours_actual, 2),
            "timeOfDay": {k: v.to_dict() for k, v in self.time_of_day.items()},
            "dayOfWeek": {k: v.to_dict() for k, v in self.day_of_week.items()},
            "categories": {k: v.to_dict() for k, v in self.categories.items()},
            "priorities": {k: v.to_dict() for k, v in self.priorities.items()},
            "durationAccuracy": self.durations.to_dict(),
            "bestTime": self.best_time(),
            "worstTime": self.worst_time(),
            "bestDay": self.best_day(),
            "worstDay": self.worst_day(),
            "recommendations": self.recommendations(),
        }


def analyze_completion_patterns(records: Iterable[HistoryRecord]) -> CompletionPatterns:
    patterns = CompletionPatterns()
    for record in records:
        patterns.sample_size += 1
        weekday = WEEKDAYS[date.fromisoformat(record.date).weekday()]

        for item in record.schedule.items:
            done = item.completed
            period = time_of_day(item.time)
            if period is not None:
                patterns.time_of_day[period].add(done)
            patterns.day_of_week[weekday].add(done)
            if item.category:
                patterns.categories.setdefault(item.category, CompletionCount()).add(done)
            patterns.priorities[item.priority.value].add(done)

            patterns.total_tasks += 1
            if done:
                patterns.completed_tasks += 1

            estimated = parse_duration_minutes(item.duration) if item.duration else None
            if estimated is not None:
                patterns.hours_scheduled += estimated / 60
            if item.actual_duration:
                patterns.hours_actual += item.actual_duration / 60
                if estimated is not None:
                    diff = item.actual_duration - estimated
                    if abs(diff) <= estimated * ACCURACY_MARGIN:
                        patterns.durations.accurate += 1
                    elif diff > 0:
                        patterns.durations.underestimated += 1
                    else:
                        patterns.durations.overestimated += 1
    return patterns
