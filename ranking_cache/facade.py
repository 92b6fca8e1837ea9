"""Public query cache: entry store, eviction, single-flight fetches and cleanup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable

from ranking_cache.cache import Clock, EntryStore, LRUEvictionPolicy, monotonic_ms
from ranking_cache.config import CacheConfig
from ranking_cache.coordinator import FetchCoordinator
from ranking_cache.scheduler import CleanupScheduler

logger = logging.getLogger(__name__)

Fetch = Callable[[str], Awaitable[Any]]


class CacheEventKind(str, Enum):
    STORED = 'stored'
    INVALIDATED = 'invalidated'
    CLEARED = 'cleared'
    EVICTED = 'evicted'
    EXPIRED = 'expired'


@dataclass(frozen=True, slots=True)
class CacheEvent:
    kind: CacheEventKind
    # None for CLEARED, which covers every key at once
    key: str | None = None


Listener = Callable[[CacheEvent], None]


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    failures: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0


class QueryCache:
    """Read-through cache in front of an async ``fetch(key)`` capability.

    A key moves ABSENT -> PENDING on the first ``get``, PENDING -> PRESENT
    when the fetch succeeds, and back to ABSENT on fetch failure, TTL expiry
    or invalidation. Concurrent ``get`` calls for a PENDING key share one
    fetch.

    Invalidation only touches stored entries. A fetch already in flight when
    ``invalidate`` or ``invalidate_all`` runs still stores its result once it
    settles.

    Example:
        >>> async def fetch(key: str) -> dict:
        ...     return await store.fetch(key)
        >>> async with QueryCache(fetch, CacheConfig(max_entries=50)) as cache:
        ...     league = await cache.get('league:abc')
        ...     fresh = await cache.get('league:abc', force_refresh=True)
    """

    def __init__(
        self,
        fetch: Fetch,
        config: CacheConfig | None = None,
        *,
        clock: Clock | None = None,
        name: str = 'cache',
    ) -> None:
        self._config = (config or CacheConfig()).validate()
        self._fetch = fetch
        self._name = name
        self._store = EntryStore(
            self._config.ttl_ms, clock=clock or monotonic_ms, on_expired=self._expired
        )
        self._eviction = LRUEvictionPolicy(self._config.max_entries)
        self._coordinator = FetchCoordinator()
        self._scheduler = CleanupScheduler(self.sweep, self._config.sweep_interval_ms, name=name)
        self._listeners: list[Listener] = []
        self._stats = CacheStats()

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def get(self, key: str, *, force_refresh: bool = False) -> Any:
        """Return the value for ``key``, fetching it when absent, stale or forced.

        Raises:
            ReentrantMutationDetected: If called from inside the fetch for ``key``.
            Exception: Whatever the underlying ``fetch`` raised, unchanged.
        """
        self._coordinator.check_reentry(key)
        if not force_refresh:
            entry = self._store.get(key)
            if entry is not None:
                self._stats.hits += 1
                logger.debug('%s hit: %s', self._name, key)
                return entry.value

        self._stats.misses += 1
        logger.debug('%s miss: %s (force_refresh=%s)', self._name, key, force_refresh)
        return await self._coordinator.request(key, lambda: self._load(key))

    def has(self, key: str) -> bool:
        return self._store.has(key)

    def peek(self, key: str) -> Any | None:
        """Return the cached value without fetching or touching recency."""
        entry = self._store.peek(key)
        return None if entry is None else entry.value

    def is_pending(self, key: str) -> bool:
        return self._coordinator.is_pending(key)

    def invalidate(self, key: str) -> None:
        if self._store.delete(key):
            logger.debug('%s invalidated %s', self._name, key)
            self._publish(CacheEvent(CacheEventKind.INVALIDATED, key))

    def invalidate_all(self) -> None:
        removed = self._store.clear()
        logger.debug('%s cleared %d entries', self._name, removed)
        self._publish(CacheEvent(CacheEventKind.CLEARED))

    def sweep(self) -> int:
        """Delete every expired entry; returns how many were removed."""
        expired = self._store.expired_keys()
        for key in expired:
            self._store.delete(key)
            self._expired(key)
        return len(expired)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for cache mutations; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def stats(self) -> CacheStats:
        return replace(self._stats, size=len(self._store))

    def keys(self) -> list[str]:
        return self._store.keys()

    def __len__(self) -> int:
        return len(self._store)

    def start(self) -> None:
        self._scheduler.start()

    def stop(self) -> None:
        self._scheduler.stop()

    async def aclose(self) -> None:
        await self._scheduler.aclose()

    async def __aenter__(self) -> QueryCache:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _load(self, key: str) -> Any:
        # Runs once per fetch, inside the shared task, so joined callers see one write.
        self._stats.fetches += 1
        try:
            value = await self._fetch(key)
        except Exception as exc:
            self._stats.failures += 1
            logger.debug('%s fetch failed for %s: %r', self._name, key, exc)
            raise
        self._write(key, value)
        return value

    def _expired(self, key: str) -> None:
        # sweep removals and stale entries dropped on access both land here
        self._stats.expirations += 1
        self._publish(CacheEvent(CacheEventKind.EXPIRED, key))

    def _write(self, key: str, value: Any) -> None:
        self._store.put(key, value)
        evicted = self._eviction.enforce(self._store)
        self._stats.evictions += len(evicted)
        # listeners only ever see the store within its bound
        self._publish(CacheEvent(CacheEventKind.STORED, key))
        for victim in evicted:
            self._publish(CacheEvent(CacheEventKind.EVICTED, victim))

    def _publish(self, event: CacheEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception('%s listener failed on %s', self._name, event)
