"""
FrameData model for captured video frames.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

# Conversions to OpenCV channel order, keyed by FrameData.color_order.
_TO_BGR: Dict[str, int] = {
    "rgb": cv2.COLOR_RGB2BGR,
    "rgba": cv2.COLOR_RGBA2BGR,
    "bgra": cv2.COLOR_BGRA2BGR,
}


@dataclass
class FrameData:
    """
    Metadata and payload for a captured video frame.

    Owned by one scheduler cycle; never retained across cycles.

    Attributes:
        frame: The raw frame data as a numpy array.
        width: Frame width in pixels.
        height: Frame height in pixels.
        timestamp: Unix timestamp when frame was captured.
        frame_index: Sequential frame number since start (the frame id).
        source: Identifier for the camera/video source.
        color_order: Channel order of `frame` ("bgr" for OpenCV, "rgb", "rgba").
    """
    frame: np.ndarray
    width: int
    height: int
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None
    color_order: str = "bgr"

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float,
        frame_index: int = 0,
        source: Optional[str] = None,
        color_order: str = "bgr",
    ) -> "FrameData":
        """Create FrameData from a numpy array."""
        h, w = frame.shape[:2]
        return cls(
            frame=frame,
            width=w,
            height=h,
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
            color_order=color_order,
        )

    @property
    def shape(self) -> Tuple[int, ...]:
        """Return (height, width, channels)."""
        return self.frame.shape

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    def as_bgr(self) -> np.ndarray:
        """
        Return the pixels as 3-channel BGR, the order OpenCV encoders expect.

        Raises:
            ValueError: If color_order is not one of bgr, rgb, rgba, bgra.
        """
        order = (self.color_order or "bgr").lower()
        if order == "bgr":
            return self.frame
        if order not in _TO_BGR:
            raise ValueError(f"Unsupported color order: {self.color_order}")
        return cv2.cvtColor(self.frame, _TO_BGR[order])
