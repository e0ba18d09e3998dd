"""
Static observation source.

Serves the same image (or a fixed list of images, round-robin) on every
read. Useful for demos without a camera and for exercising the pipeline in
tests.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import cv2
import numpy as np

from models.frame import FrameData
from .base import ObservationSource, ObservationConfig


@dataclass
class StaticSourceConfig(ObservationConfig):
    """
    Attributes:
        image_path: Image file loaded on open() (BGR). Ignored when images
            are passed to the constructor.
        color_order: Channel order of the provided images.
        max_frames: Stop (return None) after this many frames. None = forever.
    """
    image_path: Optional[str] = None
    color_order: str = "bgr"
    max_frames: Optional[int] = None


class StaticSource(ObservationSource):
    def __init__(self, config: StaticSourceConfig, images: Optional[Sequence[np.ndarray]] = None):
        super().__init__(config)
        self._static_config = config
        self._images: List[np.ndarray] = list(images) if images is not None else []

    def open(self) -> None:
        if self._is_open:
            return
        if not self._images:
            path = self._static_config.image_path
            if not path:
                raise RuntimeError("StaticSource needs images or an image_path")
            image = cv2.imread(path, cv2.IMREAD_COLOR)
            if image is None:
                raise RuntimeError(f"Failed to read image: {path}")
            self._images = [image]
        self._is_open = True
        self._frame_index = 0
        logging.info(f"StaticSource opened: source_id={self.source_id}, images={len(self._images)}")

    def read(self) -> Optional[FrameData]:
        if not self._is_open:
            return None
        max_frames = self._static_config.max_frames
        if max_frames is not None and self._frame_index >= max_frames:
            return None

        image = self._images[self._frame_index % len(self._images)]
        self._frame_index += 1
        return FrameData.from_numpy(
            image,
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
            color_order=self._static_config.color_order,
        )

    def close(self) -> None:
        self._is_open = False
