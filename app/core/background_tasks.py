"""Periodic background jobs owned by long-lived services."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicJob:
    """Run a coroutine function on a fixed interval until stopped.

    A failing run is logged and the schedule continues.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        func: Callable[[], Awaitable[object]],
        run_immediately: bool = False,
    ) -> None:
        """Initialize job.

        Args:
            name: Job name used in logs
            interval: Seconds between runs
            func: Coroutine function to run
            run_immediately: Run once at start instead of after the first interval
        """
        self.name = name
        self.interval = interval
        self.func = func
        self.run_immediately = run_immediately
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule the job on the running event loop."""
        if self.is_running:
            logger.warning(f"Job '{self.name}' already running")
            return self._task
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"Job '{self.name}' started (interval: {self.interval}s)")
        return self._task

    async def stop(self) -> None:
        """Cancel the job and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Job '{self.name}' stopped")

    async def run_once(self) -> None:
        """Run the job function once, logging any failure."""
        try:
            await self.func()
        except Exception as e:
            logger.error(f"Job '{self.name}' failed: {e}")

    async def _run(self) -> None:
        if self.run_immediately:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
