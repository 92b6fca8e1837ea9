"""In-memory entry store with TTL staleness and LRU eviction.

Entries live in an OrderedDict whose iteration order is the recency order:
the head is the least recently used key, the tail the most recently used.
Neither class performs I/O or schedules anything.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def monotonic_ms() -> int:
    """Monotonic clock in whole milliseconds."""
    return time.monotonic_ns() // 1_000_000


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    inserted_at: int
    last_accessed_at: int

    def expired(self, now: int, ttl_ms: int) -> bool:
        return now - self.inserted_at >= ttl_ms

    def touch(self, now: int) -> None:
        # last_accessed_at never precedes inserted_at, even if the clock misbehaves
        self.last_accessed_at = max(now, self.inserted_at)


class EntryStore:
    """Mapping of cache key to entry with lazy TTL checks.

    ``has``, ``get`` and ``peek`` treat an entry older than ``ttl_ms`` as
    absent and drop it on sight, reporting the key to ``on_expired``; expired
    entries nobody asks about stay until a sweep removes them. ``put`` and
    ``get`` move the key to the most recently used position.
    """

    def __init__(
        self,
        ttl_ms: int,
        *,
        clock: Clock = monotonic_ms,
        on_expired: Callable[[str], None] | None = None,
    ) -> None:
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._on_expired = on_expired
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def has(self, key: str) -> bool:
        return self._live(key, self._clock()) is not None

    def get(self, key: str) -> CacheEntry | None:
        now = self._clock()
        entry = self._live(key, now)
        if entry is None:
            return None
        entry.touch(now)
        self._entries.move_to_end(key)
        return entry

    def peek(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key`` without touching it."""
        return self._live(key, self._clock())

    def put(self, key: str, value: Any) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(key=key, value=value, inserted_at=now, last_accessed_at=now)
        self._entries[key] = entry
        self._entries.move_to_end(key)
        return entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def expired_keys(self) -> list[str]:
        now = self._clock()
        return [key for key, entry in self._entries.items() if entry.expired(now, self._ttl_ms)]

    def keys(self) -> list[str]:
        """Keys ordered from least to most recently used."""
        return list(self._entries)

    def entries(self) -> Iterator[CacheEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def _live(self, key: str, now: int) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(now, self._ttl_ms):
            self._entries.pop(key, None)
            logger.debug('Dropped stale entry %s on access', key)
            if self._on_expired is not None:
                self._on_expired(key)
            return None
        return entry


class LRUEvictionPolicy:
    """Keeps an :class:`EntryStore` at or below ``max_entries``.

    The victim is the head of the recency order. When several head entries
    were last accessed in the same millisecond, the one inserted earliest is
    evicted first so the outcome does not depend on touch order within a tick.
    """

    def __init__(self, max_entries: int) -> None:
        self._max_entries = max_entries

    def enforce(self, store: EntryStore) -> list[str]:
        evicted: list[str] = []
        while len(store) > self._max_entries:
            victim = self._select_victim(store)
            store.delete(victim)
            evicted.append(victim)
        if evicted:
            logger.debug(
                'Evicted %d entries over limit %d: %s', len(evicted), self._max_entries, evicted
            )
        return evicted

    @staticmethod
    def _select_victim(store: EntryStore) -> str:
        entries = store.entries()
        victim = next(entries)
        # recency order is non-decreasing in last_accessed_at, so ties sit together at the head
        for entry in entries:
            if entry.last_accessed_at != victim.last_accessed_at:
                break
            if entry.inserted_at < victim.inserted_at:
                victim = entry
        return victim.key
