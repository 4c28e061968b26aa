# src/secretary_sync/tasks/task_models.py

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError
from ..core.timeutil import utc_now_iso


class Section(StrEnum):
    TODAY = "today"
    UPCOMING = "upcoming"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    UNDATED = "undated"

    @classmethod
    def parse(cls, raw: Any, default: Section | None = None) -> Section:
        """
        Accept canonical names and the legacy parser names ("todayTasks", "Undated Tasks").

        Unknown values fall back to `default` when given, otherwise raise ValidationError.
        """
        if isinstance(raw, Section):
            return raw
        s = str(raw or "").strip().lower().replace(" ", "")
        if s.endswith("tasks"):
            s = s[: -len("tasks")]
        try:
            return cls(s)
        except ValueError:
            if default is not None:
                return default
            raise ValidationError(f"Unknown section: {raw!r}") from None


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.MEDIUM


def normalize_text(text: str | None) -> str:
    return (text or "").strip().lower()


def generate_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:16]}"


def content_task_id(section: Section, text: str) -> str:
    """Stable id derived from (section, normalized text); used for records that arrive without one."""
    digest = hashlib.sha1(f"{section.value}\n{normalize_text(text)}".encode("utf-8")).hexdigest()
    return f"task-{digest[:16]}"


def sanitize_date(raw: Any) -> str | None:
    """Return YYYY-MM-DD or None for anything that is not a recognizable date."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()
    s = str(raw).strip()
    try:
        return date.fromisoformat(s[:10]).isoformat()
    except ValueError:
        return None


def _opt_int(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return None


def _str_list(raw: Any) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        return [raw]
    return [str(x) for x in raw if str(x).strip()]


def _notes(raw: Any) -> list[dict[str, Any]]:
    if not raw:
        return []
    out: list[dict[str, Any]] = []
    for item in raw:
        if isinstance(item, dict):
            out.append(dict(item))
        elif str(item).strip():
            out.append({"type": "note", "text": str(item)})
    return out


TEXT_MIN_CHARS = 3
TEXT_MAX_CHARS = 500
SUB_TASK_MAX_CHARS = 200
DURATION_MIN_MINUTES = 5
DURATION_MAX_MINUTES = 480


def check_task_limits(values: Mapping[str, Any]) -> None:
    """
    Bounds for caller input to create/update. Migrated records skip this.

    `values` is keyed by Task attribute name; absent keys are not checked.
    Raises ValidationError naming every violation.
    """
    problems: list[str] = []

    if "text" in values:
        text = str(values["text"] or "").strip()
        if len(text) < TEXT_MIN_CHARS:
            problems.append(f"text must be at least {TEXT_MIN_CHARS} characters")
        elif len(text) > TEXT_MAX_CHARS:
            problems.append(f"text cannot exceed {TEXT_MAX_CHARS} characters")

    if values.get("estimated_duration") not in (None, ""):
        minutes = _opt_int(values["estimated_duration"])
        if minutes is None or not DURATION_MIN_MINUTES <= minutes <= DURATION_MAX_MINUTES:
            problems.append(
                f"estimatedDuration must be between {DURATION_MIN_MINUTES} and {DURATION_MAX_MINUTES} minutes"
            )

    sub_tasks = values.get("sub_tasks") or []
    if isinstance(sub_tasks, str):
        sub_tasks = [sub_tasks]
    for i, sub in enumerate(sub_tasks):
        if not isinstance(sub, str) or not sub.strip():
            problems.append(f"subTasks[{i}] cannot be empty")
        elif len(sub) > SUB_TASK_MAX_CHARS:
            problems.append(f"subTasks[{i}] cannot exceed {SUB_TASK_MAX_CHARS} characters")

    if problems:
        raise ValidationError("; ".join(problems))


# Document field name (camelCase, as stored remotely) -> Task attribute.
_WIRE_NAMES: dict[str, str] = {
    "id": "id",
    "text": "text",
    "section": "section",
    "priority": "priority",
    "date": "date",
    "completed": "completed",
    "completedAt": "completed_at",
    "subTasks": "sub_tasks",
    "reminders": "reminders",
    "details": "details",
    "createdAt": "created_at",
    "modifiedAt": "modified_at",
    "estimatedDuration": "estimated_duration",
    "actualDuration": "actual_duration",
}


@dataclass(slots=True)
class Task:
    id: str
    text: str
    section: Section = Section.UNDATED
    priority: Priority = Priority.MEDIUM
    date: str | None = None
    completed: bool = False
    completed_at: str | None = None
    sub_tasks: list[str] = field(default_factory=list)
    reminders: list[dict[str, Any]] = field(default_factory=list)
    details: list[dict[str, Any]] = field(default_factory=list)
    created_at: str = ""
    modified_at: str = ""
    estimated_duration: int | None = None
    actual_duration: int | None = None

    @property
    def normalized_text(self) -> str:
        return normalize_text(self.text)

    @property
    def detail_weight(self) -> int:
        return len(self.sub_tasks) + len(self.reminders)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for wire, attr in _WIRE_NAMES.items():
            val = getattr(self, attr)
            if isinstance(val, StrEnum):
                val = val.value
            elif isinstance(val, list):
                val = [dict(v) if isinstance(v, dict) else v for v in val]
            out[wire] = val
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Build a Task from a stored document (camelCase fields)."""
        return cls(
            id=str(data.get("id") or ""),
            text=str(data.get("text") or ""),
            section=Section.parse(data.get("section"), default=Section.UNDATED),
            priority=Priority.from_db(data.get("priority")),
            date=sanitize_date(data.get("date")),
            completed=bool(data.get("completed", False)),
            completed_at=data.get("completedAt") or None,
            sub_tasks=_str_list(data.get("subTasks")),
            reminders=_notes(data.get("reminders")),
            details=_notes(data.get("details")),
            created_at=str(data.get("createdAt") or ""),
            modified_at=str(data.get("modifiedAt") or ""),
            estimated_duration=_opt_int(data.get("estimatedDuration")),
            actual_duration=_opt_int(data.get("actualDuration")),
        )

    @classmethod
    def from_raw(cls, raw: dict[str, Any], *, section_hint: str | None = None, now: str | None = None) -> Task:
        """
        Normalize a loosely-typed record from a TaskSource or caller input.

        This is the single place where legacy field names are honored:
        - text may arrive as "text", "task" or "content" (first line only for content),
        - section may arrive as "todayTasks"-style names or be implied by the source group,
        - reminders default to the "reminder"-typed entries of details.
        """
        if not isinstance(raw, dict):
            raise ValidationError(f"Task record must be a mapping, got {type(raw).__name__}")

        text = raw.get("text") or raw.get("task") or ""
        if not text and raw.get("content"):
            text = str(raw["content"]).split("\n", 1)[0]
        text = str(text).strip()
        if not text:
            raise ValidationError("Task text is required")

        section = Section.parse(raw.get("section") or section_hint or Section.UNDATED, default=Section.UNDATED)
        ts = now or utc_now_iso()

        details = _notes(raw.get("details"))
        reminders = _notes(raw.get("reminders")) or [d for d in details if d.get("type") == "reminder"]

        completed = bool(raw.get("completed", False))
        return cls(
            id=str(raw.get("id") or "").strip() or generate_task_id(),
            text=text,
            section=section,
            priority=Priority.from_db(raw.get("priority")),
            date=sanitize_date(raw.get("date")),
            completed=completed,
            completed_at=(raw.get("completedAt") or raw.get("completed_at")) if completed else None,
            sub_tasks=_str_list(raw.get("subTasks") or raw.get("sub_tasks")),
            reminders=reminders,
            details=details,
            created_at=str(raw.get("createdAt") or raw.get("created_at") or ts),
            modified_at=ts,
            estimated_duration=_opt_int(raw.get("estimatedDuration") or raw.get("estimated_duration")),
            actual_duration=_opt_int(raw.get("actualDuration") or raw.get("actual_duration")),
        )


TASK_FIELDS = frozenset(f.name for f in fields(Task))
