"""
Backend orchestrator.

Chooses an execution strategy per detection mode and falls back per frame:

    local:     local model -> synthetic
    remote:    stream (fire-and-forget) -> HTTP one-shot -> synthetic
    synthetic: synthetic

Fallback is never sticky: a failed call only affects the frame that made it.
The one exception is local model initialization, which is attempted once per
session; after a failure every frame goes straight to synthetic.

The orchestrator is the only writer of the published batch and of the
backend state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from inference.backend import DetectionBackend
from inference.errors import BackendError, BackendInitError, ChannelError, DecodeError, InvalidFrame
from inference.remote_backend import StreamingBackend
from inference.synthetic import SyntheticBackend
from models.detection import Detection, DetectionBatch
from models.frame import FrameData

from .publisher import DetectionPublisher
from .state import BackendState, DetectionMode


class BackendOrchestrator:
    """
    Per-session backend state machine.

    Args:
        mode: Detection mode ("local", "remote" or "synthetic").
        publisher: Where accepted batches are published.
        local: Local model backend (required for mode "local").
        stream: Streaming backend (mode "remote").
        http: One-shot HTTP backend (mode "remote").
        synthetic: Fallback generator; one is created if omitted.
    """

    def __init__(
        self,
        mode: str,
        publisher: DetectionPublisher,
        local: Optional[DetectionBackend] = None,
        stream: Optional[StreamingBackend] = None,
        http: Optional[DetectionBackend] = None,
        synthetic: Optional[DetectionBackend] = None,
    ):
        self.mode = DetectionMode(mode)
        self.publisher = publisher
        self.local = local
        self.stream = stream
        self.http = http
        self.synthetic = synthetic or SyntheticBackend()
        self._state = BackendState.UNSELECTED
        self._closed = False
        self._started = False

        if self.stream is not None:
            self.stream.set_handlers(self._on_stream_reply, self._on_stream_closed)

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def _set_state(self, state: BackendState) -> None:
        if state != self._state:
            logging.info(f"Backend state: {self._state.value} -> {state.value}")
            self._state = state

    def _chain(self) -> List[DetectionBackend]:
        if self.mode == DetectionMode.LOCAL:
            chain = [self.local]
        elif self.mode == DetectionMode.REMOTE:
            chain = [self.stream, self.http]
        else:
            chain = []
        return [b for b in chain if b is not None] + [self.synthetic]

    async def start(self) -> None:
        """
        Bring up the backend for the configured mode. Never raises on backend failure.

        A close() that lands while start() is still awaiting a backend wins:
        the state stays UNSELECTED and anything brought up late is released.
        """
        if self._started:
            return
        self._started = True

        if self.mode == DetectionMode.LOCAL:
            if self.local is None:
                logging.error("Local mode selected but no local backend configured")
                self._set_state(BackendState.LOCAL_FAILED)
                return
            try:
                await self.local.start()
            except BackendInitError as e:
                if self._closed:
                    return
                logging.error(f"Local backend initialization failed, using synthetic detections: {e}")
                self._set_state(BackendState.LOCAL_FAILED)
                return
            if self._closed:
                await self.local.close()
                return
            self._set_state(BackendState.LOCAL_READY)

        elif self.mode == DetectionMode.REMOTE:
            if self.http is not None:
                await self.http.start()
            if self._closed:
                return
            if self.stream is None:
                self._set_state(BackendState.REMOTE_CLOSED)
                return
            self._set_state(BackendState.REMOTE_CONNECTING)
            try:
                await self.stream.start()
            except ChannelError as e:
                if self._closed:
                    return
                logging.warning(f"Detection stream unavailable, using one-shot requests: {e}")
                self._set_state(BackendState.REMOTE_CLOSED)
                return
            if self._closed:
                await self.stream.close()
                return
            self._set_state(BackendState.REMOTE_OPEN)

        else:
            self._set_state(BackendState.FALLBACK)

    def _publish(self, batch: DetectionBatch) -> bool:
        if self._closed:
            return False
        return self.publisher.publish(batch)

    def _on_stream_reply(self, detections: List[Detection]) -> None:
        self._publish(DetectionBatch.of(detections, frame_id=None, origin="remote"))

    def _on_stream_closed(self) -> None:
        if self._closed:
            return
        self._set_state(BackendState.REMOTE_CLOSED)

    async def process(self, frame: FrameData) -> Optional[DetectionBatch]:
        """
        Run one frame through the fallback chain.

        Returns:
            The batch published for this frame, or None when nothing was
            published (frame skipped, reply pending on the stream, or session
            already closed).
        """
        if self._closed:
            return None
        if frame.frame is None or frame.frame.size == 0 or frame.width <= 0 or frame.height <= 0:
            logging.warning(f"Skipping frame {frame.frame_index}: empty image")
            return None

        for backend in self._chain():
            if not backend.available:
                continue
            try:
                detections = await backend.submit(frame)
            except asyncio.CancelledError:
                raise
            except InvalidFrame as e:
                logging.warning(f"Skipping frame {frame.frame_index}: {e}")
                return None
            except DecodeError as e:
                logging.warning(f"Decode failed for frame {frame.frame_index}: {e}")
                batch = DetectionBatch.empty(frame_id=frame.frame_index)
                return batch if self._publish(batch) else None
            except BackendError as e:
                logging.warning(f"{backend.name} backend failed for frame {frame.frame_index}, falling back: {e}")
                continue
            except Exception as e:
                logging.warning(
                    f"{backend.name} backend raised unexpectedly for frame {frame.frame_index}, "
                    f"falling back: {e}"
                )
                continue

            if detections is None:
                return None

            batch = DetectionBatch.of(detections, frame_id=frame.frame_index, origin=backend.origin)
            return batch if self._publish(batch) else None

        batch = DetectionBatch.empty(frame_id=frame.frame_index)
        return batch if self._publish(batch) else None

    async def close(self) -> None:
        """Tear down all backends. No batch is published afterwards."""
        if self._closed:
            return
        self._closed = True

        backends = [self.stream, self.http, self.local, self.synthetic]
        for backend in backends:
            if backend is None:
                continue
            try:
                await backend.close()
            except Exception as e:
                logging.warning(f"Error closing {backend.name} backend: {e}")

        self._set_state(BackendState.UNSELECTED)
