"""Fixed-interval polling, one asyncio task per key."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Refresh = Callable[[], Awaitable[object]]


class PollingScheduler:
    """Runs each registered refresh on its own interval.

    Starting an active key is a no-op. Ticks for one key never overlap, and a
    tick that raises is logged without stopping later ticks.
    """

    def __init__(
        self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ) -> None:
        self._sleep = sleep
        self._tasks: dict[str, asyncio.Task] = {}
        self._refreshers: dict[str, Refresh] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def start(self, key: str, interval: float, refresh: Refresh) -> bool:
        """Schedule ``refresh`` every ``interval`` seconds. False if already running."""
        if self.is_running(key):
            logger.debug("Polling for %s already active", key)
            return False
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._refreshers[key] = refresh
        self._tasks[key] = asyncio.create_task(self._run(key, interval), name=f"poll:{key}")
        logger.info("Started polling %s every %.0fs", key, interval)
        return True

    async def stop(self, key: str) -> None:
        task = self._tasks.pop(key, None)
        self._refreshers.pop(key, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped polling %s", key)

    async def stop_all(self) -> None:
        for key in list(self._tasks):
            await self.stop(key)

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def active_keys(self) -> list[str]:
        return sorted(k for k in self._tasks if self.is_running(k))

    async def trigger(self, key: str) -> bool:
        """Run one tick now, outside the timer. False if the key is unknown."""
        refresh = self._refreshers.get(key)
        if refresh is None:
            return False
        return await self._tick(key, refresh)

    async def _run(self, key: str, interval: float) -> None:
        while True:
            refresh = self._refreshers.get(key)
            if refresh is None:
                return
            await self._tick(key, refresh)
            await self._sleep(interval)

    async def _tick(self, key: str, refresh: Refresh) -> bool:
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            try:
                await refresh()
                return True
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Refresh for %s failed", key)
                return False
