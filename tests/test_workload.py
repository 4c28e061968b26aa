# tests/test_workload.py

from __future__ import annotations

import pytest

from secretary_sync.schedules.schedule_models import Schedule, ScheduleItem
from secretary_sync.schedules.workload import (
    DailyCapacity,
    calculate_daily_capacity,
    parse_duration_minutes,
    summarize_workload,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("45 minutes", 45),
        ("2 hours", 120),
        ("1 hour", 60),
        ("1.5h", 90),
        ("90 mins", 90),
        ("20m", 20),
        ("3 hrs", 180),
        ("25", 25),
        (15, 15),
        ("about an hour", 30),
        ("", 30),
        (None, 30),
        (0, 30),
    ],
)
def test_parse_duration_minutes(raw, expected: int) -> None:
    assert parse_duration_minutes(raw) == expected


def test_parse_duration_uses_first_pair_only() -> None:
    assert parse_duration_minutes("1 hour 30 minutes") == 60
    assert parse_duration_minutes("1h30m") == 60
    assert parse_duration_minutes("2hrs") == 120


def _schedule(*durations: str | None, category: str = "work") -> Schedule:
    return Schedule(
        date="2024-06-01",
        items=[ScheduleItem(task=f"t{i}", duration=d, category=category) for i, d in enumerate(durations)],
    )


def test_capacity_sums_item_durations() -> None:
    cap = calculate_daily_capacity(_schedule("2 hours", "90 minutes", "30 minutes"))

    assert cap.total_minutes == 240
    assert cap.total_hours == 4.0
    assert cap.item_count == 3
    assert cap.is_overloaded is False
    assert cap.capacity_percent == 50.0


def test_capacity_four_and_a_half_hours() -> None:
    cap = calculate_daily_capacity(_schedule("2 hours", "90 minutes", "60 minutes"))

    assert cap.total_minutes == 270
    assert cap.total_hours == 4.5
    assert cap.to_dict()["totalHours"] == 4.5


def test_capacity_defaults_and_overload() -> None:
    cap = calculate_daily_capacity(_schedule(None, "whenever"), default_item_minutes=20)
    assert cap.total_minutes == 40

    heavy = calculate_daily_capacity(_schedule("5 hours", "4 hours"), workday_hours=8)
    assert heavy.is_overloaded is True
    assert heavy.by_category == {"work": 540}

    assert calculate_daily_capacity(None).total_minutes == 0


def _cap(day: str, hours: float) -> DailyCapacity:
    return DailyCapacity(date=day, item_count=1, total_minutes=int(hours * 60), total_hours=hours)


def test_balanced_window() -> None:
    summary = summarize_workload([_cap("d1", 3.0), _cap("d2", 5.0), _cap("d3", 4.0)])

    assert summary.unbalanced is False
    assert summary.spread_hours == 2.0
    assert summary.heavy_days == []
    assert summary.light_days == []


def test_unbalanced_window() -> None:
    summary = summarize_workload([_cap("d1", 1.0), _cap("d2", 7.0), _cap("d3", 4.0)])

    assert summary.unbalanced is True
    assert summary.spread_hours == 6.0
    assert summary.heavy_days == ["d2"]
    assert summary.light_days == ["d1"]
    assert summary.total_hours == 12.0


def test_empty_window() -> None:
    assert summarize_workload([]).unbalanced is False
