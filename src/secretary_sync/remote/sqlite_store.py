# src/secretary_sync/remote/sqlite_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..core.errors import NotFoundError, RemoteUnavailableError, ValidationError
from .query import MAX_BATCH_SIZE, Document, Query, QueryPage, WriteOp, apply_query

logger = logging.getLogger(__name__)


def split_path(path: str) -> tuple[str, str]:
    """'users/u/tasks/t1' -> ('users/u/tasks', 't1')"""
    collection, sep, key = (path or "").strip("/").rpartition("/")
    if not sep or not collection or not key:
        raise ValidationError(f"Invalid document path: {path!r}")
    return collection, key


class SqliteDocumentStore:
    """
    Document collection store backed by a SQLite file.

    Meant to live on a synced or network-mounted location and play the role
    of the remote store: documents addressed by slash paths, range queries
    ordered by any field, merge updates and transactional batches capped at
    MAX_BATCH_SIZE operations.

    Blocking SQLite calls run in a worker thread (asyncio.to_thread), so the
    event loop only suspends on them. Every sqlite3 failure surfaces as
    RemoteUnavailableError, honoring the connection timeout.

    `set_online(False)` simulates a lost connection.
    """

    supports_where = True

    def __init__(
        self,
        db_path: str | Path,
        *,
        timeout_seconds: float = 10.0,
        max_batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self._db_path = Path(db_path)
        self._timeout = float(timeout_seconds)
        self.max_batch_size = max(1, min(int(max_batch_size), MAX_BATCH_SIZE))
        self._online = True
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
        except (OSError, sqlite3.Error):
            logger.exception("Remote document store unavailable at %s; starting offline.", self._db_path)
            self._online = False
        logger.info("SqliteDocumentStore ready db=%s online=%s", self._db_path, self._online)

    def close(self) -> None:
        return

    def is_available(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        self._online = bool(online)
        logger.info("Remote store %s", "online" if online else "offline")

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    collection TEXT NOT NULL,
                    doc_key TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection, doc_key)")
            conn.commit()
        finally:
            conn.close()

    def _require_online(self) -> None:
        if not self._online:
            raise RemoteUnavailableError("Remote document store is offline")

    async def _run(self, fn, *args):
        self._require_online()
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise RemoteUnavailableError(f"Remote store error: {e}") from e

    @staticmethod
    def _encode(data: Mapping[str, Any]) -> str:
        return json.dumps(dict(data), ensure_ascii=False, separators=(",", ":"))

    @staticmethod
    def _decode(raw: str) -> dict[str, Any]:
        try:
            val = json.loads(raw)
        except ValueError:
            logger.exception("Corrupt document JSON; returning empty document.")
            return {}
        return val if isinstance(val, dict) else {}

    # ---- sync bodies (run in worker thread) ----

    def _get_sync(self, path: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT data FROM documents WHERE path = ?", (path,)).fetchone()
            return self._decode(row["data"]) if row else None
        finally:
            conn.close()

    @staticmethod
    def _upsert(cur: sqlite3.Cursor, path: str, payload: str) -> None:
        collection, key = split_path(path)
        cur.execute(
            """
            INSERT INTO documents(path, collection, doc_key, data, updated_at) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
            """,
            (path, collection, key, payload, time.time()),
        )

    def _merge(self, cur: sqlite3.Cursor, path: str, data: Mapping[str, Any]) -> None:
        row = cur.execute("SELECT data FROM documents WHERE path = ?", (path,)).fetchone()
        if row is None:
            raise NotFoundError(f"No document to update at {path}")
        merged = {**self._decode(row["data"]), **dict(data)}
        self._upsert(cur, path, self._encode(merged))

    def _set_sync(self, path: str, data: Mapping[str, Any]) -> None:
        conn = self._get_conn()
        try:
            self._upsert(conn.cursor(), path, self._encode(data))
            conn.commit()
        finally:
            conn.close()

    def _update_sync(self, path: str, data: Mapping[str, Any]) -> None:
        conn = self._get_conn()
        try:
            self._merge(conn.cursor(), path, data)
            conn.commit()
        finally:
            conn.close()

    def _delete_sync(self, path: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM documents WHERE path = ?", (path,))
            conn.commit()
        finally:
            conn.close()

    def _query_sync(self, collection_path: str, query: Query) -> QueryPage:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT doc_key, data FROM documents WHERE collection = ?",
                (collection_path.strip("/"),),
            ).fetchall()
        finally:
            conn.close()
        docs = [Document(key=str(r["doc_key"]), data=self._decode(r["data"])) for r in rows]
        return apply_query(docs, query)

    def _batch_sync(self, ops: list[WriteOp]) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            for op in ops:
                if op.kind == "set":
                    self._upsert(cur, op.path, self._encode(op.data or {}))
                elif op.kind == "update":
                    self._merge(cur, op.path, op.data or {})
                elif op.kind == "delete":
                    cur.execute("DELETE FROM documents WHERE path = ?", (op.path,))
                else:
                    raise ValidationError(f"Unknown batch op: {op.kind}")
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---- RemoteStore API ----

    async def get(self, path: str) -> dict[str, Any] | None:
        return await self._run(self._get_sync, path)

    async def set(self, path: str, data: Mapping[str, Any]) -> None:
        await self._run(self._set_sync, path, data)

    async def update(self, path: str, data: Mapping[str, Any]) -> None:
        await self._run(self._update_sync, path, data)

    async def delete(self, path: str) -> None:
        await self._run(self._delete_sync, path)

    async def query(self, collection_path: str, query: Query) -> QueryPage:
        return await self._run(self._query_sync, collection_path, query)

    async def batch_write(self, ops: list[WriteOp]) -> None:
        if len(ops) > self.max_batch_size:
            raise ValidationError(f"Batch of {len(ops)} ops exceeds limit {self.max_batch_size}")
        if not ops:
            return
        await self._run(self._batch_sync, ops)
        logger.debug("Remote batch committed ops=%d", len(ops))
