# src/secretary_sync/llm/fallback.py

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any

from ..tasks.task_models import Priority, Section, Task

MAX_FALLBACK_ITEMS = 8
DAY_END = time(22, 0)
DAY_START = time(9, 0)

FALLBACK_SUMMARY = (
    "Fallback schedule created because the schedule generator was unavailable. "
    "Tasks are arranged in priority order with estimated durations."
)

_PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


def categorize_section(section: Section) -> str:
    if section in (Section.TODAY, Section.UPCOMING):
        return "urgent"
    if section == Section.DAILY:
        return "routine"
    return "personal"


def _round_up_quarter(dt: datetime) -> datetime:
    dt = dt.replace(second=0, microsecond=0)
    remainder = dt.minute % 15
    return dt + timedelta(minutes=15 - remainder) if remainder else dt


class FallbackScheduleGenerator:
    """
    Deterministic ScheduleGenerator used offline or when the LLM fails.

    Up to 8 open tasks, highest priority first, laid out back to back from the
    next quarter hour (today) or 09:00 (other days) and never past 22:00.
    """

    def __init__(self, *, now: datetime | None = None) -> None:
        self._now = now

    def generate(self, tasks: list[Task], target_date: str, context: Any = None) -> dict[str, Any]:
        now = self._now or datetime.now()
        day = date.fromisoformat(target_date)
        if day == now.date():
            cursor = _round_up_quarter(now)
        else:
            cursor = datetime.combine(day, DAY_START)
        end = datetime.combine(day, DAY_END)

        open_tasks = sorted(
            (t for t in tasks if not t.completed),
            key=lambda t: _PRIORITY_ORDER.get(t.priority, 1),
        )

        items: list[dict[str, Any]] = []
        for task in open_tasks[:MAX_FALLBACK_ITEMS]:
            if cursor >= end:
                break
            routine = task.section == Section.DAILY
            items.append(
                {
                    "id": task.id,
                    "time": cursor.strftime("%H:%M"),
                    "task": task.text.split("\n", 1)[0],
                    "duration": "15-30 minutes" if routine else "30-45 minutes",
                    "priority": task.priority.value,
                    "category": categorize_section(task.section),
                }
            )
            cursor += timedelta(minutes=30 if routine else 45)

        return {
            "schedule": items,
            "summary": FALLBACK_SUMMARY,
            "generatedAt": now.isoformat(timespec="seconds"),
            "fallback": True,
        }
