# tests/test_preferences.py

from __future__ import annotations

import pytest

from secretary_sync.core.errors import ValidationError
from secretary_sync.preferences import DEFAULT_PREFERENCES, PreferencesRepository
from secretary_sync.sync.coordinator import SyncCoordinator

from .fakes import FakeRemoteStore


@pytest.mark.asyncio
async def test_defaults_when_nothing_stored(coordinator: SyncCoordinator) -> None:
    prefs = PreferencesRepository(coordinator)
    assert await prefs.load() == DEFAULT_PREFERENCES


@pytest.mark.asyncio
async def test_save_merges_and_drops_secrets(coordinator: SyncCoordinator, remote: FakeRemoteStore) -> None:
    prefs = PreferencesRepository(coordinator)

    saved = await prefs.save({"theme": "dark", "openrouterApiKey": "sk-secret"})

    assert saved["theme"] == "dark"
    assert saved["refreshInterval"] == 30
    assert "openrouterApiKey" not in saved
    assert "updatedAt" in saved
    assert "openrouterApiKey" not in remote.docs["users/default-user/settings/user_preferences"]

    loaded = await prefs.load()
    assert loaded["theme"] == "dark"


@pytest.mark.asyncio
async def test_save_requires_mapping(coordinator: SyncCoordinator) -> None:
    with pytest.raises(ValidationError):
        await PreferencesRepository(coordinator).save(["theme"])  # type: ignore[arg-type]
