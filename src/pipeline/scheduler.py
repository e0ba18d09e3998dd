"""
Frame scheduler.

A fixed-rate sampler: every tick it grabs one frame and hands it to the
orchestrator without waiting for the previous call to finish. Inference
latency therefore never slows the cadence, and calls may overlap; whichever
result arrives last is what gets published (subject to the publisher's
stale-frame guard).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Set

from models.frame import FrameData
from observation.base import ObservationSource

from .orchestrator import BackendOrchestrator
from .publisher import DetectionPublisher

DEFAULT_FPS = 10.0


@dataclass
class SchedulerStats:
    """Runtime statistics for the scheduler."""
    ticks: int = 0
    frames_submitted: int = 0
    read_failures: int = 0
    consecutive_failures: int = 0
    missed_ticks: int = 0
    start_time: float = field(default_factory=time.time)


class FrameScheduler:
    """
    Drives detection at a fixed cadence.

    Example:
        scheduler = FrameScheduler(source, orchestrator, publisher, fps=10)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        source: ObservationSource,
        orchestrator: BackendOrchestrator,
        publisher: DetectionPublisher,
        fps: float = DEFAULT_FPS,
    ):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.source = source
        self.orchestrator = orchestrator
        self.publisher = publisher
        self.interval = 1.0 / fps
        self.stats = SchedulerStats()
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._running = False
        self._starting = False
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def start(self) -> None:
        """Open the frame source, bring up the backend and arm the timer."""
        if self._running or self._starting:
            return
        self._starting = True
        self._stopping = False
        self.stats = SchedulerStats()
        try:
            await asyncio.to_thread(self.source.open)
            if not self._stopping:
                await self.orchestrator.start()
        finally:
            self._starting = False

        if self._stopping or self.orchestrator.closed:
            # stop() ran while we were opening; release what came up late.
            await self._close_source()
            logging.info("Frame scheduler start aborted by stop")
            return

        self._running = True
        self._timer = asyncio.create_task(self._run())
        logging.info(
            f"Frame scheduler started: source={self.source.source_id}, "
            f"mode={self.orchestrator.mode.value}, interval={self.interval:.3f}s"
        )

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while self._running:
            await self._tick()

            next_tick += self.interval
            now = loop.time()
            if next_tick < now:
                # Fell behind (slow frame read); skip the missed ticks instead of bursting.
                missed = int((now - next_tick) / self.interval) + 1
                self.stats.missed_ticks += missed
                next_tick += missed * self.interval
            await asyncio.sleep(next_tick - now)

    async def _tick(self) -> None:
        self.stats.ticks += 1
        try:
            frame = await asyncio.to_thread(self.source.read)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.warning(f"Frame read error: {e}")
            frame = None

        if frame is None:
            self.stats.read_failures += 1
            self.stats.consecutive_failures += 1
            logging.warning(f"Frame read failed ({self.stats.consecutive_failures} consecutive)")
            return

        self.stats.consecutive_failures = 0
        self._submit(frame)

    def _submit(self, frame: FrameData) -> None:
        if not self._running:
            return
        task = asyncio.create_task(self._process(frame))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        self.stats.frames_submitted += 1

    async def _process(self, frame: FrameData) -> None:
        try:
            await self.orchestrator.process(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The orchestrator absorbs backend errors; this only guards the loop.
            logging.error(f"Unhandled error processing frame {frame.frame_index}: {e}")

    async def stop(self) -> None:
        """
        Disarm the timer, cancel in-flight calls, release resources and clear
        the published detections. Nothing is published after this returns.

        Also valid while start() is still in progress; start() then returns
        without arming the timer.
        """
        if self._stopping or (not self._running and not self._starting and self._timer is None):
            return
        self._stopping = True
        self._running = False
        self.publisher.close()

        tasks = list(self._in_flight)
        if self._timer is not None:
            tasks.append(self._timer)
            self._timer = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()

        await self.orchestrator.close()
        await self._close_source()

        logging.info(
            f"Frame scheduler stopped: ticks={self.stats.ticks}, "
            f"submitted={self.stats.frames_submitted}, read_failures={self.stats.read_failures}"
        )

    async def _close_source(self) -> None:
        try:
            await asyncio.to_thread(self.source.close)
        except Exception as e:
            logging.warning(f"Error closing source: {e}")
