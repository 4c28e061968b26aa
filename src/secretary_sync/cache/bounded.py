# src/secretary_sync/cache/bounded.py

from __future__ import annotations

import heapq
import itertools
import json
import logging
from collections.abc import Hashable, Iterator
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_SIZE_SAMPLE = 8


@dataclass(slots=True)
class CacheEntry(Generic[V]):
    value: V
    last_access: int


class BoundedCache(Generic[K, V]):
    """
    LRU cache keyed by entity id.

    - `set` and `get` stamp the entry with a per-instance access counter, so
      two instances never share eviction state and ties cannot happen.
    - `set` never evicts. The owning repository calls `evict_overflow()` after
      each batch of inserts.
    """

    def __init__(self, name: str, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.name = name
        self.capacity = int(capacity)
        self._entries: dict[K, CacheEntry[V]] = {}
        self._clock = itertools.count(1)
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[K]:
        return iter(list(self._entries))

    def values(self) -> list[V]:
        return [e.value for e in self._entries.values()]

    def has(self, key: K) -> bool:
        """Membership test; does not count as an access."""
        return key in self._entries

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        entry.last_access = next(self._clock)
        self.hits += 1
        return entry.value

    def set(self, key: K, value: V) -> None:
        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = CacheEntry(value=value, last_access=next(self._clock))
        else:
            entry.value = value
            entry.last_access = next(self._clock)

    def remove(self, key: K) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def evict_overflow(self, limit: int | None = None) -> list[K]:
        """Evict least-recently-accessed entries until at or under limit (default: capacity)."""
        limit = self.capacity if limit is None else max(0, int(limit))
        overflow = len(self._entries) - limit
        if overflow <= 0:
            return []

        victims = heapq.nsmallest(overflow, self._entries.items(), key=lambda kv: kv[1].last_access)
        evicted = [k for k, _ in victims]
        for k in evicted:
            del self._entries[k]
        self.evictions += len(evicted)
        logger.debug("Cache %s evicted=%d size=%d limit=%d", self.name, len(evicted), len(self._entries), limit)
        return evicted

    def estimated_bytes(self) -> int:
        """Rough memory estimate: item count x average JSON size of a small sample."""
        if not self._entries:
            return 0
        sample = list(itertools.islice(self._entries.values(), _SIZE_SAMPLE))
        total = 0
        for entry in sample:
            total += len(_to_json(entry.value))
        return int(total / len(sample) * len(self._entries))

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "estimated_bytes": self.estimated_bytes(),
        }


def _to_json(value: Any) -> str:
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    elif is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(value)
