"""
ObservationSource interface for pluggable frame sources.

The frame scheduler pulls exactly one frame per tick from a source and never
retains it past that cycle. Sources are synchronous; the scheduler calls
them off the event loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from models.frame import FrameData


@dataclass
class ObservationConfig:
    """
    Base configuration for observation sources.

    Attributes:
        source_id: Unique identifier for this source (e.g., "cam-01").
        resolution: Target resolution as (width, height). None = source default.
        fps: Target capture rate. None = source default.
        metadata: Additional source-specific configuration.
    """
    source_id: str = "default"
    resolution: Optional[tuple[int, int]] = None
    fps: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class ObservationSource(ABC):
    """
    Abstract base class for frame sources.

    Lifecycle:
        1. Create instance with config
        2. open() acquires the device
        3. read() returns one FrameData per call (None on failure)
        4. close() releases the device; safe to call more than once
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Number of frames read since open; also the id of the last frame."""
        return self._frame_index

    @abstractmethod
    def open(self) -> None:
        """
        Acquire the source.

        Raises:
            RuntimeError: If the source cannot be opened.
        """

    @abstractmethod
    def read(self) -> Optional[FrameData]:
        """Return the next frame, or None if no frame is available."""

    @abstractmethod
    def close(self) -> None:
        """Release the source."""

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FrameData]:
        if not self._is_open:
            raise RuntimeError("Source must be open before iterating")
        while True:
            frame_data = self.read()
            if frame_data is None:
                break
            yield frame_data
