"""PollingLoop -- fixed-interval background check for backends without push events.

Runs ``check`` once immediately on start, then every ``interval`` seconds on
an asyncio task. A failing tick is logged and the loop keeps going; ``stop``
cancels the task and waits for it so no timer outlives its subscription.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


class PollingLoop:
    """Background loop invoking an async check at a fixed interval.

    Args:
        check: Async callable run on every tick.
        interval: Seconds between the end of one tick and the next.
        name: Task name, also used in log events.
    """

    def __init__(
        self,
        check: Callable[[], Awaitable[None]],
        interval: float,
        name: str,
    ) -> None:
        self._check = check
        self._interval = interval
        self._name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Run the first check inline, then schedule the loop."""
        if self.running:
            return
        await self._tick()
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.debug("polling.started", loop=self._name, interval=self._interval)

    async def stop(self) -> None:
        """Cancel the loop task. Safe to call more than once."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("polling.stopped", loop=self._name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self._tick()

    async def _tick(self) -> None:
        try:
            await self._check()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("polling.tick_failed", loop=self._name, exc_info=True)
