# src/secretary_sync/sync/coordinator.py

"""
Offline-first write/read path.

Every write lands in the LocalStore first and is then pushed to the RemoteStore.
The outcome of the push is recorded as a SyncMarker (synced / pending). Pending
markers are retried by `replay_pending()`, which is the only other path that
talks to the remote for writes.

Failure semantics:
- LocalStore failures raise StorageUnavailableError to the caller.
- RemoteStore failures of any kind are logged and parked as pending markers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..core.errors import ValidationError
from ..core.ports import LocalStore, RemoteStore
from ..remote.query import Document, Query, QueryPage, WriteOp, apply_query
from ..storage.sync_markers import SyncMarker, SyncMarkerStore, SyncOp, SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "default-user"

# Remote collection name -> local key prefix (local key = "{prefix}-{key}").
LOCAL_PREFIXES: dict[str, str] = {
    "tasks": "task",
    "schedules": "schedule",
    "history": "history",
    "settings": "settings",
}


@dataclass(slots=True, frozen=True)
class SyncStatusReport:
    online: bool
    pending: int
    last_replay_at: float | None
    replay_in_progress: bool


class SyncCoordinator:
    def __init__(
        self,
        local: LocalStore,
        markers: SyncMarkerStore,
        remote: RemoteStore,
        *,
        user_id: str = DEFAULT_USER_ID,
    ) -> None:
        self._local = local
        self._markers = markers
        self._remote = remote
        self._user_id = user_id
        self._key_locks: defaultdict[tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)
        self._replay_in_progress = False
        self.last_replay_at: float | None = None

    # ---- addressing ----

    @property
    def max_batch_size(self) -> int:
        return int(getattr(self._remote, "max_batch_size", 500))

    @property
    def supports_where(self) -> bool:
        return bool(getattr(self._remote, "supports_where", False))

    @property
    def local(self) -> LocalStore:
        """Direct LocalStore access for bookkeeping records that are never synced (locks, timestamps)."""
        return self._local

    def collection_path(self, collection: str) -> str:
        return f"users/{self._user_id}/{collection}"

    def doc_path(self, collection: str, key: str) -> str:
        return f"{self.collection_path(collection)}/{key}"

    @staticmethod
    def local_key(collection: str, key: str) -> str:
        if not key:
            raise ValidationError("key is required")
        return f"{LOCAL_PREFIXES.get(collection, collection)}-{key}"

    def is_online(self) -> bool:
        try:
            return bool(self._remote.is_available())
        except Exception:
            logger.exception("remote.is_available() failed; treating as offline")
            return False

    # ---- remote push ----

    async def _push(self, collection: str, key: str, op: SyncOp, value: Mapping[str, Any] | None, revision: int) -> bool:
        """Send one write to the remote. Returns True when the marker ends up synced."""
        if not self.is_online():
            self._markers.record_error(collection, key, revision, "remote unavailable")
            logger.debug("Remote offline; %s %s/%s parked as pending", op.value, collection, key)
            return False

        path = self.doc_path(collection, key)
        async with self._key_locks[(collection, key)]:
            try:
                if op == SyncOp.DELETE:
                    await self._remote.delete(path)
                else:
                    await self._remote.set(path, dict(value or {}))
            except Exception as e:
                self._markers.record_error(collection, key, revision, f"{e.__class__.__name__}: {e}")
                logger.warning("Remote %s failed for %s (pending): %s", op.value, path, e)
                return False

        synced = self._markers.mark_synced(collection, key, revision)
        if not synced:
            logger.debug("Newer local write for %s/%s superseded revision %s", collection, key, revision)
        return synced

    # ---- public API ----

    async def write(self, collection: str, key: str, value: Mapping[str, Any]) -> Mapping[str, Any]:
        """
        Persist locally, then try the remote.

        Never raises because of network state; raises StorageUnavailableError
        if the local write fails.
        """
        self._local.set(self.local_key(collection, key), value)
        revision = self._markers.mark_pending(collection, key, op=SyncOp.SET)
        await self._push(collection, key, SyncOp.SET, value, revision)
        return value

    async def remove(self, collection: str, key: str) -> None:
        self._local.remove(self.local_key(collection, key))
        revision = self._markers.mark_pending(collection, key, op=SyncOp.DELETE)
        await self._push(collection, key, SyncOp.DELETE, None, revision)

    async def write_many(self, collection: str, items: list[tuple[str, Mapping[str, Any]]]) -> int:
        """
        Batched variant of write(): every item is written locally, then all of
        them go to the remote in a single batch_write. Returns how many items
        ended up synced. The caller keeps len(items) <= max_batch_size.
        """
        if len(items) > self.max_batch_size:
            raise ValidationError(f"Batch of {len(items)} exceeds remote limit {self.max_batch_size}")
        if not items:
            return 0

        revisions: list[tuple[str, int]] = []
        for key, value in items:
            self._local.set(self.local_key(collection, key), value)
            revisions.append((key, self._markers.mark_pending(collection, key, op=SyncOp.SET)))

        if not self.is_online():
            logger.info("Remote offline; batch of %d %s parked as pending", len(items), collection)
            return 0

        ops = [WriteOp(kind="set", path=self.doc_path(collection, key), data=dict(value)) for key, value in items]
        try:
            await self._remote.batch_write(ops)
        except Exception as e:
            logger.warning("Remote batch of %d %s failed (pending): %s", len(ops), collection, e)
            for key, rev in revisions:
                self._markers.record_error(collection, key, rev, f"{e.__class__.__name__}: {e}")
            return 0

        synced = 0
        for key, rev in revisions:
            if self._markers.mark_synced(collection, key, rev):
                synced += 1
        return synced

    async def read(self, collection: str, key: str) -> dict[str, Any] | None:
        """
        Remote first (when reachable), LocalStore otherwise.

        A key with a pending local write is always served locally: the remote
        copy is known to be older.
        """
        local_key = self.local_key(collection, key)
        marker = self._markers.get(collection, key)
        has_pending = marker is not None and marker.status == SyncStatus.PENDING

        if self.is_online() and not has_pending:
            seen = self._revision(marker)
            try:
                doc = await self._remote.get(self.doc_path(collection, key))
            except Exception as e:
                logger.info("Remote read failed for %s/%s, using local copy: %s", collection, key, e)
            else:
                if doc is not None and self._refresh_local(collection, key, doc, seen):
                    return doc

        return self._local.get(local_key)

    @staticmethod
    def _revision(marker: SyncMarker | None) -> int | None:
        return marker.revision if marker is not None else None

    def _refresh_local(self, collection: str, key: str, doc: Mapping[str, Any], seen: int | None) -> bool:
        """
        Store a remotely read document as the local copy.

        Skipped when a local write to the key landed while the remote call was
        in flight: the remote copy is then older than the local one.
        """
        current = self._markers.get(collection, key)
        if self._revision(current) != seen or (current is not None and current.status == SyncStatus.PENDING):
            logger.debug("Local write to %s/%s raced a remote read; keeping local copy", collection, key)
            return False
        self._local.set(self.local_key(collection, key), doc)
        self._markers.mark_synced(collection, key, seen)
        return True

    async def query(self, collection: str, query: Query) -> QueryPage:
        """
        Run a collection query on the remote, falling back to an equivalent
        in-memory query over the local copies when the remote is unreachable or
        the collection still has pending local writes.
        """
        pending = self._markers.count(status=SyncStatus.PENDING, collection=collection)
        if self.is_online() and pending == 0:
            seen = {m.key: m.revision for m in self._markers.list_markers(collection=collection)}
            try:
                page = await self._remote.query(self.collection_path(collection), query)
            except Exception as e:
                logger.info("Remote query on %s failed, using local copies: %s", collection, e)
            else:
                fresh = [self._refresh_local(collection, d.key, d.data, seen.get(d.key)) for d in page.docs]
                if all(fresh) and self._markers.count(status=SyncStatus.PENDING, collection=collection) == 0:
                    return page
                logger.debug("Local writes to %s landed during query; answering from local copies", collection)

        return self.query_local(collection, query)

    def query_local(self, collection: str, query: Query) -> QueryPage:
        prefix = f"{LOCAL_PREFIXES.get(collection, collection)}-"
        docs = [Document(key=k[len(prefix):], data=v) for k, v in self._local.scan(prefix).items()]
        return apply_query(docs, query)

    async def replay_pending(self) -> int:
        """
        Re-push every pending marker's local value. Returns the number that became synced.

        Failures stay pending for the next call. Concurrent calls are collapsed.
        """
        if self._replay_in_progress:
            logger.debug("Replay already in progress; skipping")
            return 0
        if not self.is_online():
            return 0

        self._replay_in_progress = True
        replayed = 0
        try:
            pending = self._markers.list_markers(status=SyncStatus.PENDING)
            if pending:
                logger.info("Replaying %d pending writes", len(pending))
            for marker in pending:
                if not self.is_online():
                    logger.info("Remote went offline during replay; %d left", len(pending) - replayed)
                    break
                if await self._replay_one(marker):
                    replayed += 1
        finally:
            self._replay_in_progress = False
            self.last_replay_at = time.time()

        if replayed:
            logger.info("Replay finished synced=%d", replayed)
        return replayed

    async def _replay_one(self, marker: SyncMarker) -> bool:
        if marker.op == SyncOp.DELETE:
            return await self._push(marker.collection, marker.key, SyncOp.DELETE, None, marker.revision)

        value = self._local.get(self.local_key(marker.collection, marker.key))
        if value is None:
            # Local copy vanished (cleared store); nothing left to send.
            logger.warning("Pending %s/%s has no local value; dropping marker", marker.collection, marker.key)
            self._markers.delete(marker.collection, marker.key)
            return False
        return await self._push(marker.collection, marker.key, SyncOp.SET, value, marker.revision)

    async def on_connectivity_change(self, online: bool) -> int:
        """Hook for network state changes: replays pending writes on reconnect."""
        if not online:
            logger.info("Offline: writes will be kept locally and replayed later")
            return 0
        logger.info("Back online: replaying pending writes")
        return await self.replay_pending()

    def pending_markers(self, collection: str | None = None) -> list[SyncMarker]:
        return self._markers.list_markers(status=SyncStatus.PENDING, collection=collection)

    def marker(self, collection: str, key: str) -> SyncMarker | None:
        return self._markers.get(collection, key)

    def sync_status(self) -> SyncStatusReport:
        return SyncStatusReport(
            online=self.is_online(),
            pending=self._markers.count(status=SyncStatus.PENDING),
            last_replay_at=self.last_replay_at,
            replay_in_progress=self._replay_in_progress,
        )
