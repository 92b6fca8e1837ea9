"""Query cache behavior: fast path, single-flight, expiry, eviction and invalidation."""

from __future__ import annotations

import asyncio

import pytest

from ranking_cache.config import CacheConfig
from ranking_cache.errors import InvalidConfig, ReentrantMutationDetected
from ranking_cache.facade import CacheEvent, CacheEventKind, QueryCache

pytestmark = pytest.mark.asyncio


@pytest.fixture
def cache(fake_store, cache_config, clock) -> QueryCache:
    fake_store.documents.update({'a': 'A', 'b': 'B', 'c': 'C'})
    return QueryCache(fake_store.fetch, cache_config, clock=clock, name='test')


async def test_second_get_is_served_from_cache(cache: QueryCache, fake_store) -> None:
    """Test the fast path on a fresh entry."""
    assert await cache.get('a') == 'A'
    assert await cache.get('a') == 'A'

    assert fake_store.count('a') == 1
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.fetches) == (1, 1, 1)


async def test_concurrent_gets_trigger_one_fetch(cache: QueryCache, fake_store) -> None:
    """Test that concurrent misses share one fetch."""
    fake_store.gate = asyncio.Event()

    waiters = [asyncio.ensure_future(cache.get('a')) for _ in range(10)]
    await asyncio.sleep(0)
    assert cache.is_pending('a')
    assert not cache.has('a')

    fake_store.gate.set()
    results = await asyncio.gather(*waiters)

    assert results == ['A'] * 10
    assert fake_store.count('a') == 1
    assert cache.has('a')
    assert not cache.is_pending('a')


async def test_ttl_expiry_refetches_without_sweep(cache: QueryCache, fake_store, clock) -> None:
    """Test that a stale entry is refetched on access."""
    await cache.get('a')
    clock.advance(999)
    await cache.get('a')
    assert fake_store.count('a') == 1

    clock.advance(1)
    fake_store.documents['a'] = 'A2'

    assert await cache.get('a') == 'A2'
    assert fake_store.count('a') == 2


async def test_lru_bound_evicts_untouched_first_key(cache: QueryCache) -> None:
    """Test the entry bound on the facade."""
    await cache.get('a')
    await cache.get('b')
    await cache.get('c')

    assert not cache.has('a')
    assert cache.keys() == ['b', 'c']
    assert cache.stats().evictions == 1


async def test_touch_protects_key_from_eviction(cache: QueryCache, clock) -> None:
    """Test that a recent hit protects a key from eviction."""
    # max_entries=2, ttl_ms=1000
    await cache.get('a')
    clock.advance(1)
    await cache.get('b')
    clock.advance(1)
    await cache.get('a')
    clock.advance(1)
    await cache.get('c')

    assert cache.has('a')
    assert cache.has('c')
    assert not cache.has('b')


async def test_failed_fetch_does_not_poison(cache: QueryCache, fake_store) -> None:
    """Test that a failure leaves nothing cached."""
    error = ConnectionError('store down')
    fake_store.failures['a'] = error

    with pytest.raises(ConnectionError) as exc_info:
        await cache.get('a')

    assert exc_info.value is error
    assert not cache.has('a')
    assert len(cache) == 0

    del fake_store.failures['a']
    assert await cache.get('a') == 'A'
    assert fake_store.count('a') == 2
    assert cache.stats().failures == 1


async def test_failure_is_shared_by_joined_callers(cache: QueryCache, fake_store) -> None:
    """Test that joined callers see one failure."""
    fake_store.gate = asyncio.Event()
    fake_store.failures['a'] = LookupError('missing')

    waiters = [asyncio.ensure_future(cache.get('a')) for _ in range(3)]
    await asyncio.sleep(0)
    fake_store.gate.set()
    results = await asyncio.gather(*waiters, return_exceptions=True)

    assert all(isinstance(result, LookupError) for result in results)
    assert fake_store.count('a') == 1
    assert cache.stats().failures == 1


async def test_failed_refresh_keeps_previous_entry(cache: QueryCache, fake_store) -> None:
    """Test that a failed forced refresh keeps the old value."""
    await cache.get('a')
    fake_store.failures['a'] = TimeoutError('slow')

    with pytest.raises(TimeoutError):
        await cache.get('a', force_refresh=True)

    assert cache.peek('a') == 'A'


async def test_force_refresh_bypasses_fresh_entry(cache: QueryCache, fake_store) -> None:
    """Test force_refresh on a fresh entry."""
    await cache.get('a')
    fake_store.documents['a'] = 'A2'

    assert await cache.get('a', force_refresh=True) == 'A2'
    assert await cache.get('a') == 'A2'
    assert fake_store.count('a') == 2


async def test_invalidate_is_idempotent(cache: QueryCache, fake_store) -> None:
    """Test repeated and unknown invalidation."""
    await cache.get('a')

    cache.invalidate('a')
    cache.invalidate('a')
    cache.invalidate('never-seen')

    assert not cache.has('a')
    await cache.get('a')
    assert fake_store.count('a') == 2


async def test_invalidate_all_clears_every_entry(cache: QueryCache) -> None:
    """Test invalidate_all."""
    await cache.get('a')
    await cache.get('b')

    cache.invalidate_all()

    assert len(cache) == 0
    assert not cache.has('a')
    assert not cache.has('b')


async def test_in_flight_fetch_still_stores_after_invalidation(
    cache: QueryCache, fake_store
) -> None:
    """Test that invalidation does not cancel an in-flight fetch."""
    fake_store.gate = asyncio.Event()
    waiter = asyncio.ensure_future(cache.get('a'))
    await asyncio.sleep(0)

    cache.invalidate('a')
    cache.invalidate_all()
    fake_store.gate.set()

    assert await waiter == 'A'
    assert cache.has('a')


async def test_example_scenario(fake_store, clock) -> None:
    """Test touch-then-insert eviction with a two-entry bound."""
    fake_store.documents.update({'a': 1, 'b': 2, 'c': 3})
    config = CacheConfig(max_entries=2, ttl_ms=1000, sweep_interval_ms=200)
    cache = QueryCache(fake_store.fetch, config, clock=clock)

    await cache.get('a')
    clock.advance(1)
    await cache.get('b')
    clock.advance(1)
    await cache.get('a')
    clock.advance(1)
    await cache.get('c')

    assert set(cache.keys()) == {'a', 'c'}
    assert not cache.has('b')


async def test_reentrant_get_is_reported(fake_store, cache_config, clock) -> None:
    """Test a fetch that awaits its own key."""
    cache: QueryCache

    async def fetch(key: str) -> str:
        return await cache.get(key)

    cache = QueryCache(fetch, cache_config, clock=clock)

    with pytest.raises(ReentrantMutationDetected):
        await cache.get('a')

    assert not cache.has('a')
    assert not cache.is_pending('a')


async def test_fetch_may_read_through_another_cache(fake_store, cache_config, clock) -> None:
    """Test a fetch that reads the same key from a second cache."""
    fake_store.documents['league:1'] = {'id': '1'}
    backing = QueryCache(fake_store.fetch, cache_config, clock=clock, name='l2')
    front = QueryCache(backing.get, cache_config, clock=clock, name='l1')

    assert await front.get('league:1') == {'id': '1'}
    assert await front.get('league:1') == {'id': '1'}

    assert front.has('league:1')
    assert backing.has('league:1')
    assert fake_store.count('league:1') == 1


async def test_task_spawned_by_fetch_may_get_after_settlement(
    fake_store, cache_config, clock
) -> None:
    """Test a task spawned inside a fetch calling get later."""
    fake_store.documents['a'] = 'A'
    spawned: list[asyncio.Task] = []
    cache: QueryCache

    async def refresh_later() -> str:
        await asyncio.sleep(0.01)
        return await cache.get('a', force_refresh=True)

    async def fetch(key: str) -> str:
        if not spawned:
            spawned.append(asyncio.create_task(refresh_later()))
        return await fake_store.fetch(key)

    cache = QueryCache(fetch, cache_config, clock=clock)

    assert await cache.get('a') == 'A'
    assert not cache.is_pending('a')
    assert await spawned[0] == 'A'
    assert fake_store.count('a') == 2


async def test_subscribers_receive_mutation_events(cache: QueryCache, clock) -> None:
    """Test event order across every mutation kind."""
    events: list[CacheEvent] = []
    unsubscribe = cache.subscribe(events.append)

    await cache.get('a')
    await cache.get('b')
    await cache.get('c')
    cache.invalidate('b')
    clock.advance(1_000)
    cache.sweep()
    cache.invalidate_all()
    unsubscribe()
    await cache.get('a')

    assert events == [
        CacheEvent(CacheEventKind.STORED, 'a'),
        CacheEvent(CacheEventKind.STORED, 'b'),
        CacheEvent(CacheEventKind.STORED, 'c'),
        CacheEvent(CacheEventKind.EVICTED, 'a'),
        CacheEvent(CacheEventKind.INVALIDATED, 'b'),
        CacheEvent(CacheEventKind.EXPIRED, 'c'),
        CacheEvent(CacheEventKind.CLEARED),
    ]


async def test_access_expiry_is_published_and_counted(cache: QueryCache, clock) -> None:
    """Test that stale entries dropped on access emit EXPIRED."""
    await cache.get('a')
    events: list[CacheEvent] = []
    cache.subscribe(events.append)

    clock.advance(1_000)

    assert not cache.has('a')
    assert cache.sweep() == 0
    assert events == [CacheEvent(CacheEventKind.EXPIRED, 'a')]
    assert cache.stats().expirations == 1


async def test_failing_listener_does_not_block_writes(cache: QueryCache, caplog) -> None:
    """Test that a raising listener is logged and ignored."""
    def broken(_: CacheEvent) -> None:
        raise RuntimeError('listener bug')

    cache.subscribe(broken)

    assert await cache.get('a') == 'A'
    assert cache.has('a')
    assert 'listener failed' in caplog.text


async def test_sweep_removes_only_expired_entries(cache: QueryCache, clock) -> None:
    """Test a manual sweep."""
    await cache.get('a')
    clock.advance(600)
    await cache.get('b')
    clock.advance(400)

    assert cache.sweep() == 1
    assert cache.keys() == ['b']
    assert cache.stats().expirations == 1


@pytest.mark.parametrize(
    'overrides',
    [
        {'max_entries': 0},
        {'ttl_ms': -1},
        {'sweep_interval_ms': 0},
        {'ttl_ms': 1.5},
        {'max_entries': True},
    ],
)
async def test_invalid_config_fails_at_construction(fake_store, overrides) -> None:
    """Test config validation at construction."""
    with pytest.raises(InvalidConfig):
        QueryCache(fake_store.fetch, CacheConfig(**overrides))


async def test_context_manager_runs_cleanup(fake_store, cache_config) -> None:
    """Test async context manager lifecycle."""
    async with QueryCache(fake_store.fetch, cache_config) as cache:
        assert cache.running

    assert not cache.running
