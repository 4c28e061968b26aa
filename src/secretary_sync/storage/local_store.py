# src/secretary_sync/storage/local_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..core.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "secretary-ai-"


class SqliteLocalStore:
    """
    SQLite key/value store implementing the LocalStore port.

    Every key is stored with a fixed namespace prefix so several apps (or tests)
    can share one database file without colliding.

    Values are JSON documents. Any sqlite3 failure (disk full, locked database,
    corrupt file) is fatal and re-raised as StorageUnavailableError.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "local.sqlite3", *, prefix: str = DEFAULT_PREFIX) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._prefix = prefix
        self._ensure_schema()
        logger.info("LocalStore ready db=%s prefix=%s", self._db_path, self._prefix)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open local store {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Local store schema setup failed: {e}") from e
        finally:
            conn.close()

    def _full_key(self, key: str) -> str:
        if not key:
            raise ValueError("key is required")
        return f"{self._prefix}{key}"

    @staticmethod
    def _decode(raw: str | None) -> dict[str, Any] | None:
        if raw is None:
            return None
        try:
            val = json.loads(raw)
        except ValueError:
            logger.exception("Corrupt JSON in local store; treating as missing.")
            return None
        return val if isinstance(val, dict) else None

    # ---- public API ----

    def get(self, key: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (self._full_key(key),)).fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Local read failed key={key}: {e}") from e
        finally:
            conn.close()
        return self._decode(row["value"]) if row else None

    def set(self, key: str, value: Mapping[str, Any]) -> None:
        try:
            payload = json.dumps(dict(value), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageUnavailableError(f"Value for key={key} is not JSON-serializable: {e}") from e

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO kv(key, value, updated_at) VALUES(?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (self._full_key(key), payload, time.time()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Local write failed key={key}: {e}") from e
        finally:
            conn.close()

    def remove(self, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM kv WHERE key = ?", (self._full_key(key),))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Local delete failed key={key}: {e}") from e
        finally:
            conn.close()

    def scan(self, key_prefix: str) -> dict[str, dict[str, Any]]:
        """Return {key: value} for every key starting with key_prefix (namespace prefix stripped)."""
        full = self._full_key(key_prefix)
        # Escape LIKE wildcards so keys containing '_' or '%' match literally.
        pattern = full.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"

        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT key, value FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (pattern,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Local scan failed prefix={key_prefix}: {e}") from e
        finally:
            conn.close()

        out: dict[str, dict[str, Any]] = {}
        cut = len(self._prefix)
        for row in rows:
            val = self._decode(row["value"])
            if val is not None:
                out[str(row["key"])[cut:]] = val
        return out

    def clear(self) -> int:
        """Remove every key under this store's prefix. Returns the number of removed keys."""
        pattern = self._prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM kv WHERE key LIKE ? ESCAPE '\\'", (pattern,))
            conn.commit()
            return int(cur.rowcount)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Local clear failed: {e}") from e
        finally:
            conn.close()
