# tests/test_patterns.py

from __future__ import annotations

import pytest

from secretary_sync.core.errors import ValidationError
from secretary_sync.llm.generator import OpenRouterScheduleGenerator
from secretary_sync.schedules.patterns import analyze_completion_patterns, time_of_day
from secretary_sync.schedules.schedule_models import CompletionSnapshot, HistoryRecord, Schedule, ScheduleItem
from secretary_sync.schedules.schedule_repository import ScheduleRepository
from secretary_sync.tasks.task_models import Priority

MONDAY = "2024-06-03"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("08:00", "morning"),
        ("12:00", "afternoon"),
        ("21:59", "evening"),
        ("22:00", "night"),
        ("05:30", "night"),
        ("", None),
        ("soon", None),
    ],
)
def test_time_of_day(raw: str, expected: str | None) -> None:
    assert time_of_day(raw) == expected


def _record() -> HistoryRecord:
    morning = [
        ScheduleItem(task=f"Focus {i}", time="08:00", priority=Priority.HIGH, category="work", completed=i < 5)
        for i in range(6)
    ]
    morning[0].duration, morning[0].actual_duration = "1 hour", 65
    morning[1].duration, morning[1].actual_duration = "30 minutes", 50
    morning[2].duration, morning[2].actual_duration = "1 hour", 30
    evening = [
        ScheduleItem(task=f"Chore {i}", time="19:00", priority=Priority.LOW, category="personal", completed=i == 0)
        for i in range(5)
    ]
    schedule = Schedule(date=MONDAY, items=morning + evening)
    return HistoryRecord(schedule=schedule, completion=CompletionSnapshot.from_schedule(schedule))


def test_buckets_and_duration_accuracy() -> None:
    patterns = analyze_completion_patterns([_record()])

    assert patterns.sample_size == 1
    assert (patterns.total_tasks, patterns.completed_tasks, patterns.completion_rate) == (11, 6, 55)
    assert patterns.time_of_day["morning"].rate == 83
    assert patterns.time_of_day["evening"].rate == 20
    assert patterns.time_of_day["afternoon"].total == 0
    assert patterns.day_of_week["monday"].total == 11
    assert patterns.day_of_week["tuesday"].total == 0
    assert patterns.categories["work"].completed == 5
    assert patterns.priorities["low"].total == 5

    durations = patterns.durations
    assert (durations.accurate, durations.underestimated, durations.overestimated) == (1, 1, 1)
    assert patterns.to_dict()["hoursScheduled"] == 2.5
    assert patterns.to_dict()["hoursActual"] == 2.42

    assert patterns.best_time() == "morning"
    assert patterns.worst_time() == "evening"
    assert patterns.worst_day() == "monday"
    assert [r["type"] for r in patterns.recommendations()] == ["productivity", "workload"]


def test_generator_view() -> None:
    view = analyze_completion_patterns([_record()]).for_generator()

    assert view["bestProductiveHours"] == "morning (83% completion)"
    assert view["worstProductiveHours"] == "evening (20% completion)"
    assert view["averageCompletion"] == 55
    assert view["averageTasksCompleted"] == 6
    assert view["durationAccuracy"]["accurate"] == 1


def test_empty_history_has_no_extremes() -> None:
    patterns = analyze_completion_patterns([])

    assert patterns.best_time() is None
    assert patterns.recommendations() == []
    assert patterns.for_generator()["bestProductiveHours"] is None


@pytest.mark.asyncio
async def test_repository_analyzes_recent_window(schedule_repo: ScheduleRepository) -> None:
    await schedule_repo.save("2024-06-01", {"schedule": [{"task": "Too old", "time": "09:00"}]})
    await schedule_repo.save("2024-06-05", {"schedule": [{"task": "Gym", "time": "07:00", "completed": True}]})
    await schedule_repo.save("2024-06-10", {"schedule": [{"task": "Email", "time": "13:00"}]})

    patterns = await schedule_repo.analyze_completion_patterns(today="2024-06-10", days=7)

    assert patterns.sample_size == 2
    assert patterns.total_tasks == 2
    assert patterns.time_of_day["morning"].completed == 1
    assert patterns.day_of_week["wednesday"].total == 1

    with pytest.raises(ValidationError):
        await schedule_repo.analyze_completion_patterns(days=0)


@pytest.mark.asyncio
async def test_patterns_reach_the_generator_prompt(schedule_repo: ScheduleRepository) -> None:
    await schedule_repo.save("2024-06-05", {"schedule": [{"task": "Gym", "time": "07:00", "completed": True}]})
    ctx = await schedule_repo.load_multi_day_context("2024-06-06", days_before=1, days_after=0)
    assert "patterns" not in ctx.to_dict()

    patterns = await schedule_repo.analyze_completion_patterns(today="2024-06-05")
    ctx.patterns = patterns.for_generator()
    assert ctx.to_dict()["patterns"]["sampleDays"] == 1

    generator = OpenRouterScheduleGenerator(api_key=None, base_url="https://openrouter.example/api/v1", models=[])
    prompt = generator.build_prompt([], "2024-06-06", ctx)
    assert '"averageCompletion": 100' in prompt
