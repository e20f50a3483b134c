"""Standalone periodic trigger for dispatcher ticks and retention sweeps."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress

from engagement_jobs.domain.outcomes import TickReport

TickCallback = Callable[[], Awaitable[TickReport]]
SweepCallback = Callable[[], Awaitable[int]]

logger = logging.getLogger(__name__)


class DispatcherTicker:
    """Background loop calling `tick` every interval and `sweep` less often."""

    def __init__(
        self,
        tick: TickCallback,
        sweep: SweepCallback | None = None,
        *,
        interval_seconds: float = 60.0,
        sweep_interval_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tick = tick
        self._sweep = sweep
        self._interval_seconds = max(interval_seconds, 0.01)
        self._sweep_interval_seconds = max(sweep_interval_seconds, 0.01)
        self._clock = clock
        self._next_sweep_at = 0.0

        self._task: asyncio.Task[None] | None = None
        self._wake_event = asyncio.Event()
        self._stopping = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        task = self._task
        return task is not None and not task.done()

    async def start(self) -> None:
        """Start the background loop if not already running."""

        async with self._lifecycle_lock:
            if self.running:
                return

            self._stopping = asyncio.Event()
            self._wake_event = asyncio.Event()
            self._next_sweep_at = self._clock() + self._sweep_interval_seconds
            self._task = asyncio.create_task(self._run_loop(), name="dispatcher-ticker")
            logger.info("Dispatcher ticker started (every %.0fs).", self._interval_seconds)

    async def stop(self) -> None:
        """Stop the background loop."""

        async with self._lifecycle_lock:
            task = self._task
            if task is None:
                return
            self._task = None

            self._stopping.set()
            self._wake_event.set()
            task.cancel()

        with suppress(asyncio.CancelledError):
            await task
        logger.info("Dispatcher ticker stopped.")

    def trigger_now(self) -> None:
        """Wake the loop so the next tick runs without waiting for the interval."""

        self._wake_event.set()

    async def run_once(self) -> TickReport:
        """Run one tick and, when due, one retention sweep."""

        report = await self._tick()
        if self._sweep is not None and self._clock() >= self._next_sweep_at:
            self._next_sweep_at = self._clock() + self._sweep_interval_seconds
            removed = await self._sweep()
            logger.info("Retention sweep removed %s rows.", removed)
        return report

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(
                    self._wake_event.wait(),
                    timeout=self._interval_seconds,
                )
            except TimeoutError:
                pass
            self._wake_event.clear()
            if self._stopping.is_set():
                return

            try:
                await self.run_once()
            except Exception:
                logger.exception("Dispatcher ticker iteration failed.")


__all__ = ["DispatcherTicker", "SweepCallback", "TickCallback"]
