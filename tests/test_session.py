"""
Tests for the detection session and its config factory.
"""

import asyncio

import numpy as np

from inference.onnx_backend import LocalOnnxBackend
from inference.remote_backend import HttpBackend, StreamingBackend
from models.config import Config
from observation.static_source import StaticSource, StaticSourceConfig
from pipeline.orchestrator import BackendOrchestrator
from pipeline.publisher import DetectionPublisher
from pipeline.session import DetectionSession, build_orchestrator, create_session_from_config
from pipeline.state import BackendState


def make_config(mode="synthetic", **detection):
    detection = dict({"mode": mode, "fps": 50}, **detection)
    return Config.from_dict({"detection": detection, "remote": {"base_url": "http://127.0.0.1:9", "timeout": 0.5}})


def make_source():
    return StaticSource(StaticSourceConfig(source_id="test"), [np.zeros((48, 64, 3), dtype=np.uint8)])


class TestBuildOrchestrator:
    def test_local_mode(self):
        orch = build_orchestrator(make_config("local"), DetectionPublisher())

        assert isinstance(orch.local, LocalOnnxBackend)
        assert orch.local.cfg.model == "models/yolov5n.onnx"
        assert len(orch.local.cfg.labels) == 80
        assert orch.stream is None and orch.http is None

    def test_remote_mode(self):
        async def scenario():
            orch = build_orchestrator(make_config("remote"), DetectionPublisher())
            stream, http = orch.stream, orch.http
            await orch.close()
            return stream, http

        stream, http = asyncio.run(scenario())

        assert isinstance(stream, StreamingBackend)
        assert stream.url == "ws://127.0.0.1:9/ws/detect"
        assert isinstance(http, HttpBackend)

    def test_remote_without_stream(self):
        async def scenario():
            cfg = make_config("remote")
            cfg.remote.use_stream = False
            orch = build_orchestrator(cfg, DetectionPublisher())
            stream = orch.stream
            await orch.close()
            return stream

        assert asyncio.run(scenario()) is None


class TestDetectionSession:
    def test_synthetic_session_lifecycle(self):
        async def scenario():
            session = create_session_from_config(make_config("synthetic"), source=make_source())
            async with session:
                await asyncio.sleep(0.1)
                running, state, latest = session.running, session.state, session.latest
            return session, running, state, latest

        session, running, state, latest = asyncio.run(scenario())

        assert running is True
        assert state == BackendState.FALLBACK
        assert latest is not None and latest.origin == "synthetic"
        assert session.running is False
        assert session.state == BackendState.UNSELECTED
        assert session.latest is None

    def test_missing_model_falls_back_to_synthetic(self, tmp_path):
        async def scenario():
            cfg = make_config("local", model=str(tmp_path / "missing.onnx"))
            session = create_session_from_config(cfg, source=make_source())
            async with session:
                await asyncio.sleep(0.1)
                return session.state, session.latest

        state, latest = asyncio.run(scenario())

        assert state == BackendState.LOCAL_FAILED
        assert latest.origin == "synthetic"
        assert len(latest) > 0

    def test_remote_unreachable_falls_back_to_synthetic(self):
        async def scenario():
            session = create_session_from_config(make_config("remote"), source=make_source())
            await session.start()
            await asyncio.sleep(0.3)
            state, latest = session.state, session.latest
            await session.stop()
            return state, latest

        state, latest = asyncio.run(scenario())

        assert state == BackendState.REMOTE_CLOSED
        assert latest is not None and latest.origin == "synthetic"

    def test_subscribers_survive_restart(self):
        async def scenario():
            seen = []
            session = create_session_from_config(make_config("synthetic"), source=make_source())
            session.subscribe(seen.append)
            await session.run_for(0.05)
            first_run = len(seen)
            await session.run_for(0.05)
            return first_run, len(seen)

        first_run, total = asyncio.run(scenario())

        assert first_run > 0
        assert total > first_run

    def test_stop_without_start(self):
        session = create_session_from_config(make_config("synthetic"), source=make_source())

        asyncio.run(session.stop())

        assert session.state == BackendState.UNSELECTED

    def test_stop_during_remote_handshake(self):
        async def connect(url):
            await asyncio.sleep(0.2)
            raise OSError("refused")

        async def scenario():
            source = make_source()
            built = []

            def factory(config, publisher):
                stream = StreamingBackend("ws://detector/ws/detect", connect=connect, open_timeout=1.0)
                orch = BackendOrchestrator("remote", publisher, stream=stream)
                built.append(orch)
                return orch

            session = DetectionSession(make_config("remote"), lambda: source, orchestrator_factory=factory)
            starting = asyncio.create_task(session.start())
            await asyncio.sleep(0.05)
            scheduler = session.scheduler
            await session.stop()
            await starting
            # Give a wrongly armed timer the chance to tick
            await asyncio.sleep(0.15)
            return session, source, built[0], scheduler

        session, source, orch, scheduler = asyncio.run(scenario())

        assert session.running is False
        assert scheduler.running is False
        assert scheduler.stats.ticks == 0
        assert source.is_open is False
        assert orch.state == BackendState.UNSELECTED
        assert session.state == BackendState.UNSELECTED
