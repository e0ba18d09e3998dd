"""
Detection session.

A session owns every per-run resource: the frame source, the backends
(local model, stream socket, HTTP client), the orchestrator, the published
batch and the timer. All of it is built on start() and torn down on stop();
nothing lives in module-level state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from inference.backend import DetectionBackend
from inference.labels import load_labels
from inference.onnx_backend import LocalModelConfig, LocalOnnxBackend
from inference.remote_backend import HttpBackend, StreamingBackend, websocket_url
from inference.synthetic import SyntheticBackend
from models.config import Config
from models.detection import DetectionBatch
from observation import ObservationSource, create_source_from_config

from .orchestrator import BackendOrchestrator
from .publisher import DetectionPublisher, Subscriber
from .scheduler import FrameScheduler
from .state import BackendState, DetectionMode

OrchestratorFactory = Callable[[Config, DetectionPublisher], BackendOrchestrator]


def local_model_config(config: Config) -> LocalModelConfig:
    """Adapter: local model settings from the detection config section."""
    det = config.detection
    return LocalModelConfig(
        model=det.model,
        input_size=det.input_size,
        conf_threshold=det.conf_threshold,
        labels=load_labels(det.labels_path),
        providers=det.providers,
    )


def build_orchestrator(config: Config, publisher: DetectionPublisher) -> BackendOrchestrator:
    """Create the orchestrator and the backends its mode needs."""
    det = config.detection
    mode = DetectionMode(det.mode)
    local: Optional[DetectionBackend] = None
    stream: Optional[StreamingBackend] = None
    http: Optional[DetectionBackend] = None

    if mode == DetectionMode.LOCAL:
        local = LocalOnnxBackend(local_model_config(config))
    elif mode == DetectionMode.REMOTE:
        remote = config.remote
        if remote.use_stream:
            stream = StreamingBackend(
                websocket_url(remote.base_url),
                jpeg_quality=remote.jpeg_quality,
                open_timeout=remote.timeout,
            )
        http = HttpBackend(remote.base_url, timeout=remote.timeout, jpeg_quality=remote.jpeg_quality)

    return BackendOrchestrator(
        det.mode,
        publisher,
        local=local,
        stream=stream,
        http=http,
        synthetic=SyntheticBackend(),
    )


class DetectionSession:
    """
    One start/stop lifetime of the detection pipeline.

    Example:
        session = create_session_from_config(config)
        async with session:
            await asyncio.sleep(10)
            print(session.latest)
    """

    def __init__(
        self,
        config: Config,
        source_factory: Callable[[], ObservationSource],
        orchestrator_factory: OrchestratorFactory = build_orchestrator,
    ):
        self.config = config
        self._source_factory = source_factory
        self._orchestrator_factory = orchestrator_factory
        self._subscribers: List[Subscriber] = []
        self.publisher: Optional[DetectionPublisher] = None
        self.orchestrator: Optional[BackendOrchestrator] = None
        self.scheduler: Optional[FrameScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    @property
    def state(self) -> BackendState:
        if self.orchestrator is None:
            return BackendState.UNSELECTED
        return self.orchestrator.state

    @property
    def latest(self) -> Optional[DetectionBatch]:
        """Currently published batch (None when stopped or nothing yet)."""
        if self.publisher is None:
            return None
        return self.publisher.latest

    def subscribe(self, callback: Subscriber) -> None:
        """Receive every published batch, across restarts."""
        self._subscribers.append(callback)
        if self.publisher is not None:
            self.publisher.subscribe(callback)

    async def start(self) -> None:
        if self.running:
            return
        publisher = DetectionPublisher(drop_stale=self.config.detection.drop_stale)
        for callback in self._subscribers:
            publisher.subscribe(callback)
        orchestrator = self._orchestrator_factory(self.config, publisher)
        scheduler = FrameScheduler(
            self._source_factory(),
            orchestrator,
            publisher,
            fps=self.config.detection.fps,
        )

        self.publisher = publisher
        self.orchestrator = orchestrator
        self.scheduler = scheduler
        try:
            await scheduler.start()
        except Exception:
            await self.stop()
            raise
        if self.scheduler is not scheduler:
            # stop() ran while the backend was still coming up
            return
        logging.info(f"Detection session started: mode={self.config.detection.mode}")

    async def stop(self) -> None:
        scheduler = self.scheduler
        if scheduler is None:
            return
        await scheduler.stop()
        if self.orchestrator is not None:
            await self.orchestrator.close()
        self.scheduler = None
        self.orchestrator = None
        self.publisher = None
        logging.info("Detection session stopped")

    async def run_for(self, seconds: Optional[float] = None) -> None:
        """Start, run for `seconds` (forever if None), then stop."""
        await self.start()
        try:
            if seconds is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(seconds)
        finally:
            await self.stop()

    async def __aenter__(self) -> "DetectionSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


def create_session_from_config(
    config: Config,
    source: Optional[ObservationSource] = None,
) -> DetectionSession:
    """
    Factory: build a DetectionSession from the typed config.

    Args:
        config: Application config.
        source: Frame source to use instead of the configured camera.
    """
    if source is not None:
        source_factory: Callable[[], ObservationSource] = lambda: source
    else:
        camera_cfg = config.camera.to_dict()
        source_factory = lambda: create_source_from_config(camera_cfg, source_id="main-camera")
    return DetectionSession(config, source_factory)
