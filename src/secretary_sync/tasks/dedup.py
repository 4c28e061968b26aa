# src/secretary_sync/tasks/dedup.py

"""
Duplicate matching policy for tasks.

Two tasks are duplicates when their normalized texts (trimmed, lowercased) are
equal, or when one contains the other. Containment is loose on purpose and can
flag short texts ("call" vs "call mom"); call sites only go through
`is_duplicate`, so the policy can be tightened here alone.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from .task_models import Task, normalize_text


def is_duplicate(a: str, b: str) -> bool:
    na = normalize_text(a)
    nb = normalize_text(b)
    if not na or not nb:
        return False
    return na == nb or na in nb or nb in na


def find_duplicate(text: str, candidates: Iterable[Task], *, exclude_id: str | None = None) -> Task | None:
    """First candidate whose text matches `text`, skipping `exclude_id`."""
    for cand in candidates:
        if exclude_id is not None and cand.id == exclude_id:
            continue
        if is_duplicate(text, cand.text):
            return cand
    return None


def survivor_key(task: Task) -> tuple:
    # completed first, then more detail, then oldest; id keeps the order total.
    return (
        not task.completed,
        -task.detail_weight,
        task.created_at or "￿",
        task.id,
    )


def pick_survivor(group: list[Task]) -> Task:
    return min(group, key=survivor_key)


def group_exact(tasks: Iterable[Task]) -> dict[tuple[str, str], list[Task]]:
    """Group by normalized (section, text)."""
    groups: dict[tuple[str, str], list[Task]] = defaultdict(list)
    for t in tasks:
        groups[(t.section.value, t.normalized_text)].append(t)
    return dict(groups)
