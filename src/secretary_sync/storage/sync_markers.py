# src/secretary_sync/storage/sync_markers.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from ..core.errors import StorageUnavailableError

logger = logging.getLogger(__name__)


class SyncStatus(StrEnum):
    SYNCED = "synced"
    PENDING = "pending"

    @classmethod
    def from_db(cls, raw: str | None) -> SyncStatus:
        # Unknown values are retried rather than forgotten.
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class SyncOp(StrEnum):
    SET = "set"
    DELETE = "delete"


@dataclass(slots=True)
class SyncMarker:
    collection: str
    key: str
    status: SyncStatus
    op: SyncOp
    revision: int
    updated_at: float
    synced_at: float | None = None
    error: str | None = None


class SyncMarkerStore:
    """
    One row per locally written entity: (collection, key) -> status.

    `revision` increases on every local write. A remote acknowledgement only
    flips the marker to synced when it carries the revision it was issued for,
    so a slow ack for an older write can never hide a newer pending one.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            pending = self.count(status=SyncStatus.PENDING)
        except StorageUnavailableError:
            pending = -1
        logger.info("SyncMarkerStore ready db=%s pending=%s", self._db_path, pending)

    def close(self) -> None:
        return

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot open marker store {self._db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sync_markers (
                    collection TEXT NOT NULL,
                    key TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    op TEXT NOT NULL DEFAULT 'set',
                    revision INTEGER NOT NULL DEFAULT 0,
                    updated_at REAL NOT NULL,
                    synced_at REAL,
                    error TEXT,
                    PRIMARY KEY (collection, key)
                )
                """
            )

            cur.execute("PRAGMA table_info(sync_markers)")
            cols = {row["name"] for row in cur.fetchall()}
            if "op" not in cols:
                cur.execute("ALTER TABLE sync_markers ADD COLUMN op TEXT NOT NULL DEFAULT 'set'")
                logger.info("SyncMarkerStore migration: added column op")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_sync_markers_status ON sync_markers(status, collection)")
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker schema setup failed: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _row_to_marker(row: sqlite3.Row) -> SyncMarker:
        return SyncMarker(
            collection=str(row["collection"]),
            key=str(row["key"]),
            status=SyncStatus.from_db(row["status"]),
            op=SyncOp(row["op"]) if row["op"] in (SyncOp.SET, SyncOp.DELETE) else SyncOp.SET,
            revision=int(row["revision"] or 0),
            updated_at=float(row["updated_at"] or 0.0),
            synced_at=float(row["synced_at"]) if row["synced_at"] is not None else None,
            error=row["error"],
        )

    # ---- public API ----

    def get(self, collection: str, key: str) -> SyncMarker | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM sync_markers WHERE collection = ? AND key = ?",
                (collection, key),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker read failed {collection}/{key}: {e}") from e
        finally:
            conn.close()
        return self._row_to_marker(row) if row else None

    def mark_pending(self, collection: str, key: str, *, op: SyncOp = SyncOp.SET, error: str | None = None) -> int:
        """Record a local write that still has to reach the remote. Returns the new revision."""
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO sync_markers(collection, key, status, op, revision, updated_at, synced_at, error)
                VALUES (?, ?, 'pending', ?, 1, ?, NULL, ?)
                ON CONFLICT(collection, key) DO UPDATE SET
                    status = 'pending',
                    op = excluded.op,
                    revision = sync_markers.revision + 1,
                    updated_at = excluded.updated_at,
                    error = excluded.error
                """,
                (collection, key, op.value, now, error),
            )
            row = cur.execute(
                "SELECT revision FROM sync_markers WHERE collection = ? AND key = ?",
                (collection, key),
            ).fetchone()
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker write failed {collection}/{key}: {e}") from e
        finally:
            conn.close()
        return int(row["revision"])

    def record_error(self, collection: str, key: str, revision: int, error: str) -> None:
        """Attach the latest remote error to a pending marker (keeps it pending)."""
        conn = self._get_conn()
        try:
            conn.execute(
                """
                UPDATE sync_markers SET error = ?, updated_at = ?
                WHERE collection = ? AND key = ? AND revision = ?
                """,
                (error[:500], time.time(), collection, key, int(revision)),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker update failed {collection}/{key}: {e}") from e
        finally:
            conn.close()

    def mark_synced(self, collection: str, key: str, revision: int | None = None) -> bool:
        """
        Flip a marker to synced.

        With a revision: only if no newer local write happened meanwhile.
        Without one: unconditionally (used after a remote read refreshed the local copy),
        creating the marker if needed.
        Returns True if the marker is now synced.
        """
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            if revision is None:
                cur.execute(
                    """
                    INSERT INTO sync_markers(collection, key, status, op, revision, updated_at, synced_at, error)
                    VALUES (?, ?, 'synced', 'set', 0, ?, ?, NULL)
                    ON CONFLICT(collection, key) DO UPDATE SET
                        status = 'synced', updated_at = excluded.updated_at,
                        synced_at = excluded.synced_at, error = NULL
                    """,
                    (collection, key, now, now),
                )
            else:
                cur.execute(
                    """
                    UPDATE sync_markers
                    SET status = 'synced', synced_at = ?, updated_at = ?, error = NULL
                    WHERE collection = ? AND key = ? AND revision = ?
                    """,
                    (now, now, collection, key, int(revision)),
                )
            conn.commit()
            return cur.rowcount == 1
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker update failed {collection}/{key}: {e}") from e
        finally:
            conn.close()

    def delete(self, collection: str, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM sync_markers WHERE collection = ? AND key = ?", (collection, key))
            conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker delete failed {collection}/{key}: {e}") from e
        finally:
            conn.close()

    def list_markers(
        self,
        *,
        status: SyncStatus | None = None,
        collection: str | None = None,
        limit: int | None = None,
    ) -> list[SyncMarker]:
        sql = "SELECT * FROM sync_markers"
        clauses: list[str] = []
        params: list[object] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if collection is not None:
            clauses.append("collection = ?")
            params.append(collection)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY updated_at ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        conn = self._get_conn()
        try:
            rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker list failed: {e}") from e
        finally:
            conn.close()
        return [self._row_to_marker(r) for r in rows]

    def count(self, *, status: SyncStatus | None = None, collection: str | None = None) -> int:
        sql = "SELECT COUNT(*) FROM sync_markers"
        clauses: list[str] = []
        params: list[object] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if collection is not None:
            clauses.append("collection = ?")
            params.append(collection)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)

        conn = self._get_conn()
        try:
            (n,) = conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Marker count failed: {e}") from e
        finally:
            conn.close()
        return int(n)
