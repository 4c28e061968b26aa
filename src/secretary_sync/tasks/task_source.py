# src/secretary_sync/tasks/task_source.py

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..core.errors import ValidationError
from ..core.ports import RawTask

logger = logging.getLogger(__name__)


class JsonTaskSource:
    """
    TaskSource over a JSON file shaped like the markdown parser output:

        {"todayTasks": [{"text": "..."}, ...], "dailyTasks": [...], ...}

    A top-level {"tasks": {...}} wrapper is accepted too. Non-list groups are ignored.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load_raw_tasks(self) -> dict[str, list[RawTask]]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ValidationError(f"Task file not found: {self._path}") from None
        except ValueError as e:
            raise ValidationError(f"Task file is not valid JSON: {self._path}: {e}") from e

        if isinstance(data, dict) and isinstance(data.get("tasks"), dict):
            data = data["tasks"]
        if not isinstance(data, dict):
            raise ValidationError(f"Task file must contain an object of sections: {self._path}")

        out: dict[str, list[RawTask]] = {}
        for section, items in data.items():
            if not isinstance(items, list):
                logger.debug("Ignoring non-list group %r in %s", section, self._path)
                continue
            out[str(section)] = [i if isinstance(i, dict) else {"text": str(i)} for i in items]
        logger.info("Loaded %d task groups from %s", len(out), self._path)
        return out
