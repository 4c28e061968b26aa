# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from secretary_sync.config import Settings

_VARS = (
    "SECRETARY_DATA_DIR",
    "SECRETARY_LOCAL_DB_PATH",
    "SECRETARY_REMOTE_BATCH_LIMIT",
    "SECRETARY_TASK_CACHE_SIZE",
    "SECRETARY_WORKDAY_HOURS",
    "SECRETARY_REMOTE_ENABLED",
    "SECRETARY_LLM_MODELS",
    "SECRETARY_OPENROUTER_API_KEY",
    "OPENROUTER_API_KEY",
    "SECRETARY_HTTP_REFERER",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_derive_paths_from_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SECRETARY_DATA_DIR", str(tmp_path))

    s = Settings.from_env()

    assert s.local_db_path == tmp_path / "local.sqlite3"
    assert s.log_dir == tmp_path / "logs"
    assert s.remote_batch_limit == 500
    assert s.workday_hours == 8.0
    assert s.openrouter_api_key is None
    assert "HTTP-Referer" not in s.extra_headers


def test_overrides_and_bounds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECRETARY_REMOTE_BATCH_LIMIT", "9000")
    monkeypatch.setenv("SECRETARY_TASK_CACHE_SIZE", "0")
    monkeypatch.setenv("SECRETARY_WORKDAY_HOURS", "lots")
    monkeypatch.setenv("SECRETARY_REMOTE_ENABLED", "off")
    monkeypatch.setenv("SECRETARY_LLM_MODELS", "a/one, b/two  c/three")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-plain")
    monkeypatch.setenv("SECRETARY_HTTP_REFERER", "https://example.test")

    s = Settings.from_env()

    assert s.remote_batch_limit == 500
    assert s.task_cache_size == 1000
    assert s.workday_hours == 8.0
    assert s.remote_enabled is False
    assert s.llm_models == ["a/one", "b/two", "c/three"]
    assert s.openrouter_api_key == "sk-plain"
    assert s.extra_headers["HTTP-Referer"] == "https://example.test"
