"""Periodic background workers refreshing the shared snapshots."""

from __future__ import annotations

import asyncio
import time

from syncboard.logging import get_logger
from syncboard.services.correlation import CorrelationMap
from syncboard.services.progress import ProgressPoller
from syncboard.services.telemetry import LogFeed

logger = get_logger(__name__)


class PeriodicWorker:
    """Run :meth:`run_once` every ``interval_seconds`` until stopped."""

    name = "periodic"

    def __init__(self, interval_seconds: float) -> None:
        self._interval = max(0.05, float(interval_seconds))
        self._task: asyncio.Task[None] | None = None
        self._running = asyncio.Event()
        self._stop_event = asyncio.Event()
        self._failure_count = 0
        self.last_run_at: float | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._running.set()
            self._stop_event = asyncio.Event()
            self._task = asyncio.create_task(self._run(), name=f"syncboard-{self.name}")

    async def stop(self) -> None:
        if not self._running.is_set():
            return
        self._running.clear()
        self._stop_event.set()
        if self._task:
            await self._task
        self._task = None

    async def _run(self) -> None:
        logger.info("%s worker started", self.name)
        try:
            while self._running.is_set():
                await self.run_once()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                except TimeoutError:
                    continue
        finally:
            logger.info("%s worker stopped", self.name)

    async def run_once(self) -> None:
        """Execute a single cycle; failures are logged and never escape."""

        try:
            ok = await self._tick()
        except Exception as exc:
            ok = False
            logger.error("%s worker cycle failed: %s", self.name, exc)
        self.last_run_at = time.monotonic()
        if ok:
            self._failure_count = 0
        else:
            self._failure_count += 1

    async def _tick(self) -> bool:
        raise NotImplementedError


class CorrelationWorker(PeriodicWorker):
    name = "correlation"

    def __init__(self, correlation: CorrelationMap, interval_seconds: float = 15.0) -> None:
        super().__init__(interval_seconds)
        self._correlation = correlation

    async def _tick(self) -> bool:
        return await self._correlation.refresh()


class ProgressWorker(PeriodicWorker):
    name = "progress"

    def __init__(self, poller: ProgressPoller, interval_seconds: float = 1.0) -> None:
        super().__init__(interval_seconds)
        self._poller = poller

    async def _tick(self) -> bool:
        await self._poller.poll()
        return True


class TelemetryWorker(PeriodicWorker):
    name = "telemetry"

    def __init__(self, feed: LogFeed, interval_seconds: float = 10.0) -> None:
        super().__init__(interval_seconds)
        self._feed = feed

    async def _tick(self) -> bool:
        return await self._feed.refresh()
