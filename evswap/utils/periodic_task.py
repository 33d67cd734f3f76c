"""
Fixed-delay periodic job runner.

The task owns its interval, stop event and run statistics. main starts it;
tests call run_once() directly.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional


class PeriodicTask:
    """
    Runs `job` every `interval_seconds`, measured from the end of the previous run.

    A run that raises is logged and the schedule continues. Runs never overlap
    within one PeriodicTask.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        run_immediately: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.job = job
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self.run_count = 0
        self.failure_count = 0
        self.last_run_at: Optional[datetime] = None
        self.last_result: Any = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Any:
        """Execute the job a single time, recording the outcome."""
        self.last_run_at = datetime.now(timezone.utc)
        self.run_count += 1
        try:
            self.last_result = await self.job()
        except Exception as e:
            self.failure_count += 1
            logging.error(f"PeriodicTask[{self.name}]: run {self.run_count} failed: {e}", exc_info=True)
            return None
        return self.last_result

    async def run_forever(self):
        logging.info(f"PeriodicTask[{self.name}]: started, interval={self.interval_seconds}s")
        if self.run_immediately:
            await self.run_once()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self.run_once()
        logging.info(f"PeriodicTask[{self.name}]: stopped after {self.run_count} runs")

    def start(self) -> asyncio.Task:
        if self.is_running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever(), name=f"periodic:{self.name}")
        return self._task

    async def stop(self, timeout: float = 30.0):
        self._stop_event.set()
        if not self._task:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logging.warning(f"PeriodicTask[{self.name}]: did not stop in {timeout}s, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
