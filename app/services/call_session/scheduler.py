"""Deferred task scheduling for post-turn work."""
import asyncio
import logging
from typing import Awaitable, Callable, Set

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class ScheduledTask:
    """Handle to a delayed coroutine."""

    def __init__(self, name: str, delay: float, task: asyncio.Task):
        self.name = name
        self.delay = delay
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    def cancel(self) -> bool:
        return self._task.cancel()

    def __await__(self):
        return self._task.__await__()


class DeferredTaskScheduler:
    """
    Runs coroutine factories after a delay and keeps track of them.

    The sleep function is injectable so tests can run delays instantly or
    gate them on their own events.
    """

    def __init__(self, sleep: SleepFn = asyncio.sleep):
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def schedule(
        self,
        delay: float,
        factory: Callable[[], Awaitable[None]],
        name: str = "deferred",
    ) -> ScheduledTask:
        """Run factory() after delay seconds on the current event loop."""

        async def _run() -> None:
            await self._sleep(delay)
            try:
                await factory()
            except Exception as e:
                logger.error(
                    f"[SCHEDULER] Deferred task '{name}' failed - "
                    f"Error: {type(e).__name__}: {str(e)}",
                    exc_info=True,
                )

        task = asyncio.create_task(_run(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"[SCHEDULER] Scheduled '{name}' in {delay:.2f}s")
        return ScheduledTask(name, delay, task)

    async def wait_all(self) -> None:
        """Wait until every scheduled task (including ones they schedule) finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all pending tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"[SCHEDULER] Cancelled {len(tasks)} pending task(s)")
