"""Single-flight coordination of remote fetches."""

from __future__ import annotations

import asyncio
import logging
from contextvars import ContextVar
from typing import Any, Awaitable, Callable

from ranking_cache.errors import ReentrantMutationDetected

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]

# Fetch tasks the current task context runs inside of, or was spawned from.
_enclosing_fetches: ContextVar[frozenset[asyncio.Task[Any]]] = ContextVar(
    'ranking_cache_enclosing_fetches', default=frozenset()
)


class FetchCoordinator:
    """Guarantees at most one in-flight fetch per key.

    The first request for a key starts ``fetch_fn()`` in its own task; every
    request that arrives while that task is pending awaits the same task and
    sees the same value or the same exception. The coordinator never writes
    results anywhere, so a failed fetch leaves no trace once it settles.

    Waiters are shielded: cancelling one caller does not cancel the shared
    fetch for the others, and nothing cancels a fetch once started.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task[Any]] = {}

    def check_reentry(self, key: str) -> None:
        """Raise if the caller is part of this coordinator's pending fetch for ``key``.

        Awaiting that fetch from inside itself would never finish. Another
        coordinator's fetch for the same key, or a fetch that has already
        settled, is not a reentry.
        """
        task = self._pending.get(key)
        if task is not None and task in _enclosing_fetches.get():
            raise ReentrantMutationDetected(key)

    async def request(self, key: str, fetch_fn: FetchFn) -> Any:
        self.check_reentry(key)
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fetch_fn))
            self._pending[key] = task
            logger.debug('Started fetch for %s', key)
        else:
            logger.debug('Joined in-flight fetch for %s', key)
        return await asyncio.shield(task)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    async def _run(self, key: str, fetch_fn: FetchFn) -> Any:
        task = asyncio.current_task()
        _enclosing_fetches.set(_enclosing_fetches.get() | {task})
        try:
            return await fetch_fn()
        finally:
            # Runs before the task publishes its outcome, so no waiter resumes
            # while the settled fetch is still registered.
            if self._pending.get(key) is task:
                del self._pending[key]
