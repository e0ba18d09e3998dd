"""
Tests for the fixed-rate frame scheduler.
"""

import asyncio

import numpy as np
import pytest

from inference.backend import DetectionBackend
from inference.errors import BackendCallError
from models.detection import Detection
from observation.static_source import StaticSource, StaticSourceConfig
from pipeline.orchestrator import BackendOrchestrator
from pipeline.publisher import DetectionPublisher
from pipeline.scheduler import FrameScheduler
from pipeline.state import BackendState


def make_source(**kwargs):
    return StaticSource(
        StaticSourceConfig(source_id="test", **kwargs),
        [np.zeros((48, 64, 3), dtype=np.uint8)],
    )


class ScriptedLocal(DetectionBackend):
    """Local backend that sleeps `delay` seconds per call, then returns or raises."""

    name = "local"
    origin = "local"

    def __init__(self, delay=0.0, error=None):
        self.delay = delay
        self.error = error
        self.calls = 0
        self.completed = 0

    async def submit(self, frame):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        self.completed += 1
        if self.error is not None:
            raise self.error
        return [Detection(label="person", score=0.9, xmin=0.1, ymin=0.1, xmax=0.5, ymax=0.5)]


def build(local, fps=50.0, source=None):
    pub = DetectionPublisher()
    orch = BackendOrchestrator("local", pub, local=local)
    scheduler = FrameScheduler(source or make_source(), orch, pub, fps=fps)
    return scheduler, orch, pub


class FlakySource(StaticSource):
    """Fails every other read."""

    def read(self):
        self._reads = getattr(self, "_reads", 0) + 1
        if self._reads % 2 == 0:
            raise OSError("device busy")
        return super().read()


class TestFrameScheduler:
    def test_invalid_fps(self):
        pub = DetectionPublisher()
        with pytest.raises(ValueError):
            FrameScheduler(make_source(), BackendOrchestrator("synthetic", pub), pub, fps=0)

    def test_fallback_liveness(self):
        """Every cycle yields a non-empty batch even when every local call fails."""
        async def scenario():
            scheduler, orch, pub = build(ScriptedLocal(error=BackendCallError("always fails")))
            seen = []
            pub.subscribe(seen.append)
            await scheduler.start()
            await asyncio.sleep(0.3)
            running = scheduler.running
            state = orch.state
            await scheduler.stop()
            return seen, running, state, scheduler.stats

        seen, running, state, stats = asyncio.run(scenario())

        assert running is True
        assert state == BackendState.LOCAL_READY
        assert len(seen) >= 5
        assert all(b.origin == "synthetic" and len(b) > 0 for b in seen)
        assert stats.frames_submitted >= len(seen)

    def test_does_not_wait_for_inference(self):
        """A slow backend does not slow the sampling cadence; calls overlap."""
        async def scenario():
            local = ScriptedLocal(delay=0.3)
            scheduler, orch, pub = build(local, fps=50.0)
            await scheduler.start()
            await asyncio.sleep(0.15)
            in_flight = scheduler.in_flight
            calls, completed = local.calls, local.completed
            await scheduler.stop()
            return in_flight, calls, completed

        in_flight, calls, completed = asyncio.run(scenario())

        assert calls >= 4
        assert completed == 0
        assert in_flight >= 4

    def test_teardown_silence(self):
        """Nothing is published after stop(), even when in-flight calls finish later."""
        async def scenario():
            local = ScriptedLocal(delay=0.1)
            scheduler, orch, pub = build(local, fps=50.0)
            seen = []
            pub.subscribe(seen.append)
            await scheduler.start()
            await asyncio.sleep(0.05)
            await scheduler.stop()
            count_at_stop = len(seen)
            latest_at_stop = pub.latest
            await asyncio.sleep(0.25)
            return seen, count_at_stop, latest_at_stop, pub, orch, scheduler

        seen, count_at_stop, latest_at_stop, pub, orch, scheduler = asyncio.run(scenario())

        assert latest_at_stop is None
        assert len(seen) == count_at_stop
        assert pub.latest is None
        assert orch.state == BackendState.UNSELECTED
        assert scheduler.running is False
        assert scheduler.in_flight == 0

    def test_stop_is_idempotent(self):
        async def scenario():
            scheduler, orch, pub = build(ScriptedLocal())
            await scheduler.start()
            await scheduler.stop()
            await scheduler.stop()
            return scheduler

        scheduler = asyncio.run(scenario())

        assert scheduler.running is False

    def test_read_failures_do_not_stop_session(self):
        async def scenario():
            source = FlakySource(StaticSourceConfig(source_id="flaky"), [np.zeros((48, 64, 3), dtype=np.uint8)])
            scheduler, orch, pub = build(ScriptedLocal(), fps=50.0, source=source)
            await scheduler.start()
            await asyncio.sleep(0.2)
            running = scheduler.running
            await scheduler.stop()
            return running, scheduler.stats, source

        running, stats, source = asyncio.run(scenario())

        assert running is True
        assert stats.read_failures >= 2
        assert stats.frames_submitted >= 2
        assert source.is_open is False

    def test_source_closed_on_stop(self):
        async def scenario():
            source = make_source()
            scheduler, _, _ = build(ScriptedLocal(), source=source)
            await scheduler.start()
            opened = source.is_open
            await scheduler.stop()
            return opened, source.is_open

        opened, closed_state = asyncio.run(scenario())

        assert opened is True
        assert closed_state is False

    def test_stop_while_starting_never_arms_timer(self):
        class SlowLoad(ScriptedLocal):
            async def start(self):
                await asyncio.sleep(0.2)

        async def scenario():
            source = make_source()
            scheduler, orch, pub = build(SlowLoad(), source=source)
            starting = asyncio.create_task(scheduler.start())
            await asyncio.sleep(0.05)
            await scheduler.stop()
            await starting
            await asyncio.sleep(0.1)
            return scheduler, orch, pub, source

        scheduler, orch, pub, source = asyncio.run(scenario())

        assert scheduler.running is False
        assert scheduler.stats.ticks == 0
        assert source.is_open is False
        assert orch.state == BackendState.UNSELECTED
        assert pub.latest is None
