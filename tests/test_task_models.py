# tests/test_task_models.py

from __future__ import annotations

import pytest

from secretary_sync.core.errors import ValidationError
from secretary_sync.core.timeutil import day_key, shift_day, utc_now_iso
from secretary_sync.tasks.task_models import Priority, Section, Task, content_task_id, sanitize_date


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("today", Section.TODAY),
        ("todayTasks", Section.TODAY),
        ("Undated Tasks", Section.UNDATED),
        (" WEEKLY ", Section.WEEKLY),
        (Section.YEARLY, Section.YEARLY),
    ],
)
def test_section_parse(raw, expected: Section) -> None:
    assert Section.parse(raw) == expected


def test_section_parse_unknown() -> None:
    with pytest.raises(ValidationError):
        Section.parse("someday")
    assert Section.parse("someday", default=Section.UNDATED) == Section.UNDATED


def test_from_raw_honors_legacy_fields() -> None:
    assert Task.from_raw({"task": "Old style"}).text == "Old style"
    assert Task.from_raw({"content": "First line\nsecond line"}).text == "First line"

    task = Task.from_raw(
        {
            "text": "Dentist",
            "priority": "HIGH",
            "date": "2024-06-01T10:00:00",
            "details": [{"type": "reminder", "at": "09:00"}, "bring card"],
        },
        section_hint="upcomingTasks",
    )
    assert task.section == Section.UPCOMING
    assert task.priority == Priority.HIGH
    assert task.date == "2024-06-01"
    assert task.reminders == [{"type": "reminder", "at": "09:00"}]
    assert task.details[1] == {"type": "note", "text": "bring card"}


def test_from_raw_rejects_empty_or_non_mapping() -> None:
    with pytest.raises(ValidationError):
        Task.from_raw({"text": "  "})
    with pytest.raises(ValidationError):
        Task.from_raw("just text")  # type: ignore[arg-type]


def test_document_uses_camel_case_names() -> None:
    task = Task(id="t1", text="Read", sub_tasks=["ch 1"], completed=True, completed_at="2024-06-01T00:00:00.000Z")
    doc = task.to_dict()

    assert doc["subTasks"] == ["ch 1"]
    assert doc["completedAt"] == "2024-06-01T00:00:00.000Z"
    assert doc["section"] == "undated"
    assert Task.from_dict(doc) == task


def test_content_task_id_is_stable() -> None:
    assert content_task_id(Section.TODAY, "Buy milk") == content_task_id(Section.TODAY, "  buy MILK")
    assert content_task_id(Section.TODAY, "Buy milk") != content_task_id(Section.DAILY, "Buy milk")


def test_sanitize_date() -> None:
    assert sanitize_date("2024-06-01") == "2024-06-01"
    assert sanitize_date("soon") is None
    assert sanitize_date(None) is None


def test_time_helpers() -> None:
    assert utc_now_iso().endswith("Z")
    assert shift_day("2024-03-01", -1) == "2024-02-29"
    with pytest.raises(ValidationError):
        day_key("2024/06/01")
