"""Periodic sweep of expired cache entries."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """Runs ``sweep`` every ``interval_ms`` milliseconds on the running event loop.

    ``start`` and ``stop`` are both idempotent and ``stop`` is safe to call on
    a scheduler that never started. The sweep callback is synchronous and
    never suspends; if it raises, the error is logged and the next tick still
    runs.
    """

    def __init__(self, sweep: Callable[[], int], interval_ms: int, *, name: str = 'cache') -> None:
        self._sweep = sweep
        self._interval = interval_ms / 1000
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Begin sweeping. Must be called with an event loop running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name=f'{self._name}-cleanup'
        )
        logger.debug('Started cleanup for %s every %.3fs', self._name, self._interval)

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug('Stopped cleanup for %s', self._name)

    async def aclose(self) -> None:
        """Stop sweeping and wait for the sweep task to finish unwinding."""
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                removed = self._sweep()
            except Exception:
                logger.exception('Cleanup sweep for %s failed', self._name)
                continue
            if removed:
                logger.debug('Cleanup for %s removed %d expired entries', self._name, removed)
