# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Put them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "SECRETARY_APP_NAME": "App name used in logs (default: secretary).",
    "SECRETARY_LOG_LEVEL": "Console logging level (default: INFO).",
    "SECRETARY_LOG_DIR": "Log directory (default: <data_dir>/logs).",
    # Paths (gitignored)
    "SECRETARY_DATA_DIR": "Local data directory (default: .local/secretary).",
    "SECRETARY_LOCAL_DB_PATH": "Local store + sync markers SQLite path (default: <data_dir>/local.sqlite3).",
    "SECRETARY_REMOTE_DB_PATH": (
        "Remote document store SQLite path, e.g. on a synced folder (default: <data_dir>/remote.sqlite3)."
    ),
    "SECRETARY_LOCAL_PREFIX": "Namespace prefix of local keys (default: secretary-ai-).",
    # Remote
    "SECRETARY_USER_ID": "Fixed principal used in remote paths users/<id>/... (default: default-user).",
    "SECRETARY_REMOTE_ENABLED": "Start with the remote store reachable (true/false, default: true).",
    "SECRETARY_REMOTE_TIMEOUT_SECONDS": "Remote store busy timeout (default: 10).",
    "SECRETARY_REMOTE_BATCH_LIMIT": "Max operations per batched remote write, capped at 500.",
    # Caches
    "SECRETARY_TASK_CACHE_SIZE": "Task cache capacity (default: 1000).",
    "SECRETARY_SCHEDULE_CACHE_SIZE": "Current schedule cache capacity (default: 60).",
    "SECRETARY_HISTORY_CACHE_SIZE": "History record cache capacity (default: 120).",
    # Sync / maintenance
    "SECRETARY_SYNC_INTERVAL_SECONDS": "Pending-write replay interval (default: 30).",
    "SECRETARY_MIGRATION_LOCK_STALE_SECONDS": "Age after which a migration lock is abandoned (default: 300).",
    "SECRETARY_DEDUP_INTERVAL_HOURS": "Minimum hours between automatic dedup runs (default: 24).",
    "SECRETARY_HISTORY_DAYS_TO_KEEP": "History retention in days (default: 90).",
    "SECRETARY_MAX_HISTORY_VERSIONS": "Superseded versions kept per history record (default: 20).",
    # Workload
    "SECRETARY_WORKDAY_HOURS": "Reference workday for overload detection (default: 8).",
    "SECRETARY_DEFAULT_ITEM_MINUTES": "Duration assumed for items without a parsable one (default: 30).",
    # LLM / OpenRouter
    "SECRETARY_OPENROUTER_API_KEY": "OpenRouter API key (without it the fallback scheduler is used).",
    "SECRETARY_OPENROUTER_BASE_URL": "OpenRouter base URL (default: https://openrouter.ai/api/v1).",
    "SECRETARY_LLM_MODELS": "Comma/space separated list of models to try in order.",
    "SECRETARY_HTTP_REFERER": "HTTP-Referer header for OpenRouter; sent only when set.",
    "SECRETARY_APP_TITLE": "Optional OpenRouter metadata header title (default: Secretary AI).",
}
