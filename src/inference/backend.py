"""
Inference backend interface.

Every execution strategy (local model, remote stream, remote one-shot,
synthetic) exposes the same capability so the orchestrator's fallback logic
does not care which one it is talking to:

    submit(frame) -> list of detections, or None when the reply will arrive
    out of band, or raises BackendError.

Backends return normalized detections in the original frame coordinate system.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from models.detection import Detection
from models.frame import FrameData


class DetectionBackend(ABC):
    """Base class for detection backends."""

    #: Identifier used in logs.
    name: str = "backend"
    #: Value stored in DetectionBatch.origin for batches from this backend.
    origin: str = "local"

    @property
    def available(self) -> bool:
        """Whether submit() may be called right now."""
        return True

    async def start(self) -> None:
        """
        One-time initialization for a session.

        Raises:
            BackendInitError / ChannelError: If the backend cannot be brought up.
        """

    @abstractmethod
    async def submit(self, frame: FrameData) -> Optional[List[Detection]]:
        """Detect objects in one frame."""

    async def close(self) -> None:
        """Release resources. Safe to call more than once."""
