# src/secretary_sync/config.py

"""Settings for the whole app, read from SECRETARY_* environment variables (+ optional .env).

- Nothing here needs a secret at import time; the LLM key is optional.
- Bad numeric values are logged and replaced by the default instead of crashing the CLI.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, TypeVar

from dotenv import load_dotenv

from .remote.query import MAX_BATCH_SIZE

logger = logging.getLogger(__name__)

ENV_PREFIX = "SECRETARY"

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})

N = TypeVar("N", int, float)

load_dotenv(override=False)


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _raw(name: str) -> str | None:
    """Stripped value of an env var; None when unset or blank."""
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    return v.strip()


def _env(name: str, default: str = "") -> str:
    v = _raw(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    return next((v for v in map(_raw, names) if v is not None), default)


def _env_bool(name: str, default: bool) -> bool:
    v = _raw(name)
    return default if v is None else v.lower() in _TRUTHY


def _env_number(name: str, default: N, cast: Callable[[str], N], minimum: N | None = None) -> N:
    v = _raw(name)
    if v is None:
        return default
    try:
        value = cast(v)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a number); using %s", name, v, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Ignoring %s=%r (below %s); using %s", name, v, minimum, default)
        return default
    return value


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    return _env_number(name, default, int, minimum)


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    return _env_number(name, default, float, minimum)


def _env_list(name: str, default: List[str]) -> List[str]:
    """Comma and/or whitespace separated list."""
    v = _raw(name)
    if v is None:
        return list(default)
    return v.replace(",", " ").split()


def _env_path(name: str, default: Path) -> Path:
    v = _raw(name)
    return default if v is None else Path(v).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_dir: Path

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    local_db_path: Path
    remote_db_path: Path
    local_prefix: str

    # ---- Remote ----
    user_id: str
    remote_enabled: bool
    remote_timeout_seconds: float
    remote_batch_limit: int

    # ---- Caches ----
    task_cache_size: int
    schedule_cache_size: int
    history_cache_size: int

    # ---- Sync / maintenance ----
    sync_interval_seconds: float
    migration_lock_stale_seconds: float
    dedup_interval_hours: float
    history_days_to_keep: int
    max_history_versions: int

    # ---- Workload ----
    workday_hours: float
    default_item_minutes: int

    # ---- LLM / OpenRouter ----
    openrouter_api_key: Optional[str]
    openrouter_base_url: str
    llm_models: List[str]
    extra_headers: Dict[str, str]

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "secretary")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/secretary"))
        log_dir = _env_path(_k("LOG_DIR"), data_dir / "logs")
        local_db_path = _env_path(_k("LOCAL_DB_PATH"), data_dir / "local.sqlite3")
        remote_db_path = _env_path(_k("REMOTE_DB_PATH"), data_dir / "remote.sqlite3")
        local_prefix = _env(_k("LOCAL_PREFIX"), "secretary-ai-")

        user_id = _env(_k("USER_ID"), "default-user")
        remote_enabled = _env_bool(_k("REMOTE_ENABLED"), True)
        remote_timeout_seconds = _env_float(_k("REMOTE_TIMEOUT_SECONDS"), 10.0, minimum=0.1)
        remote_batch_limit = min(_env_int(_k("REMOTE_BATCH_LIMIT"), MAX_BATCH_SIZE, minimum=1), MAX_BATCH_SIZE)

        task_cache_size = _env_int(_k("TASK_CACHE_SIZE"), 1000, minimum=1)
        schedule_cache_size = _env_int(_k("SCHEDULE_CACHE_SIZE"), 60, minimum=1)
        history_cache_size = _env_int(_k("HISTORY_CACHE_SIZE"), 120, minimum=1)

        sync_interval_seconds = _env_float(_k("SYNC_INTERVAL_SECONDS"), 30.0, minimum=0.5)
        migration_lock_stale_seconds = _env_float(_k("MIGRATION_LOCK_STALE_SECONDS"), 300.0, minimum=1.0)
        dedup_interval_hours = _env_float(_k("DEDUP_INTERVAL_HOURS"), 24.0, minimum=0.0)
        history_days_to_keep = _env_int(_k("HISTORY_DAYS_TO_KEEP"), 90, minimum=1)
        max_history_versions = _env_int(_k("MAX_HISTORY_VERSIONS"), 20, minimum=0)

        workday_hours = _env_float(_k("WORKDAY_HOURS"), 8.0, minimum=1.0)
        default_item_minutes = _env_int(_k("DEFAULT_ITEM_MINUTES"), 30, minimum=1)

        openrouter_api_key = _first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", default=None)
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")

        # OpenRouter attribution headers; the referer is only sent when configured.
        extra_headers = {"X-Title": _env(_k("APP_TITLE"), "Secretary AI")}
        http_referer = _env(_k("HTTP_REFERER"))
        if http_referer:
            extra_headers["HTTP-Referer"] = http_referer

        llm_models = _env_list(
            _k("LLM_MODELS"),
            [
                "anthropic/claude-3.5-sonnet",
                "qwen/qwen-2.5-72b-instruct:free",
                "deepseek/deepseek-chat-v3-0324:free",
            ],
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_dir=log_dir,
            data_dir=data_dir,
            local_db_path=local_db_path,
            remote_db_path=remote_db_path,
            local_prefix=local_prefix,
            user_id=user_id,
            remote_enabled=remote_enabled,
            remote_timeout_seconds=remote_timeout_seconds,
            remote_batch_limit=remote_batch_limit,
            task_cache_size=task_cache_size,
            schedule_cache_size=schedule_cache_size,
            history_cache_size=history_cache_size,
            sync_interval_seconds=sync_interval_seconds,
            migration_lock_stale_seconds=migration_lock_stale_seconds,
            dedup_interval_hours=dedup_interval_hours,
            history_days_to_keep=history_days_to_keep,
            max_history_versions=max_history_versions,
            workday_hours=workday_hours,
            default_item_minutes=default_item_minutes,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
