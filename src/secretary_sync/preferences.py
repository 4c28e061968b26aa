# src/secretary_sync/preferences.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .core.errors import ValidationError
from .core.timeutil import utc_now_iso
from .sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)

COLLECTION = "settings"
PREFERENCES_KEY = "user_preferences"

DEFAULT_PREFERENCES: dict[str, Any] = {
    "selectedModel": "anthropic/claude-3.5-sonnet",
    "refreshInterval": 30,
    "notifications": True,
    "theme": "light",
}

# API keys stay in the environment; never synced.
_SECRET_KEYS = frozenset({"openrouterApiKey", "apiKey"})


class PreferencesRepository:
    """User preferences document, synced like any other entity."""

    def __init__(self, coordinator: SyncCoordinator) -> None:
        self._sync = coordinator

    async def load(self) -> dict[str, Any]:
        stored = await self._sync.read(COLLECTION, PREFERENCES_KEY)
        return {**DEFAULT_PREFERENCES, **(stored or {})}

    async def save(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(changes, Mapping):
            raise ValidationError("Preferences must be a mapping")
        dropped = _SECRET_KEYS & set(changes)
        if dropped:
            logger.warning("Not persisting secret preference keys: %s", ", ".join(sorted(dropped)))

        current = await self.load()
        merged = {**current, **{k: v for k, v in changes.items() if k not in _SECRET_KEYS}}
        merged["updatedAt"] = utc_now_iso()
        await self._sync.write(COLLECTION, PREFERENCES_KEY, merged)
        return merged
