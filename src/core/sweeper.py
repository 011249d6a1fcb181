"""Periodic expiry sweep for a TTL store."""

from __future__ import annotations

import asyncio
import logging

from .ttl_store import TTLStore

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Evict stale entries on an interval so memory does not wait on reads.

    Sweeping only frees memory earlier; a stale entry is a miss either way.
    """

    def __init__(self, store: TTLStore, interval: float = 30.0):
        self.store = store
        self.interval = interval
        self._task: asyncio.Task | None = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> int:
        """Run a single sweep and return the number of evicted entries."""
        removed = self.store.cleanup()
        self.runs += 1
        if removed:
            logger.info(f"Cache cleanup: removed {removed} expired entries")
        return removed

    def start(self) -> bool:
        """Start sweeping in the running event loop. No-op when disabled."""
        if self.interval <= 0:
            logger.debug("Cache sweeper disabled")
            return False
        if self.is_running:
            raise RuntimeError("Sweeper already started")
        self._task = asyncio.create_task(self._run())
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
