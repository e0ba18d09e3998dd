"""
Letterbox transform.

Maps a frame of arbitrary size into a fixed square model input while
preserving aspect ratio. The uncovered border is filled with mid-gray so it
does not bias normalization. The returned LetterboxInfo is what the
extractor uses to map boxes back into source-image coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from inference.errors import InvalidFrame

DEFAULT_INPUT_SIZE = 640
PAD_VALUE = 128


@dataclass(frozen=True)
class LetterboxInfo:
    """
    Parameters of one letterbox mapping.

    Attributes:
        scale: min(input_size / width, input_size / height).
        offset_x: Horizontal padding before the scaled image, in input pixels.
        offset_y: Vertical padding before the scaled image, in input pixels.
        input_size: Side length of the square model input.
        source_width: Width of the original frame.
        source_height: Height of the original frame.
    """
    scale: float
    offset_x: float
    offset_y: float
    input_size: int
    source_width: int
    source_height: int

    @property
    def scaled_size(self) -> Tuple[int, int]:
        """Pixel size (width, height) of the resized source inside the input."""
        return (
            max(1, int(round(self.source_width * self.scale))),
            max(1, int(round(self.source_height * self.scale))),
        )

    def to_input(self, x: float, y: float) -> Tuple[float, float]:
        """Map a source-image point into letterboxed input space."""
        return (x * self.scale + self.offset_x, y * self.scale + self.offset_y)

    def to_source(self, x: float, y: float) -> Tuple[float, float]:
        """Map a letterboxed input point back into source-image space."""
        return ((x - self.offset_x) / self.scale, (y - self.offset_y) / self.scale)


def compute_letterbox(width: int, height: int, input_size: int = DEFAULT_INPUT_SIZE) -> LetterboxInfo:
    """
    Compute scale and centering offsets for a frame.

    Raises:
        InvalidFrame: If the frame or target has zero (or negative) size.
    """
    if width <= 0 or height <= 0:
        raise InvalidFrame(f"Frame has zero area: {width}x{height}")
    if input_size <= 0:
        raise InvalidFrame(f"Input size must be positive, got {input_size}")

    scale = min(input_size / width, input_size / height)
    return LetterboxInfo(
        scale=scale,
        offset_x=(input_size - width * scale) / 2,
        offset_y=(input_size - height * scale) / 2,
        input_size=input_size,
        source_width=width,
        source_height=height,
    )


def letterbox(
    image: np.ndarray,
    input_size: int = DEFAULT_INPUT_SIZE,
    pad_value: int = PAD_VALUE,
) -> Tuple[np.ndarray, LetterboxInfo]:
    """
    Resize and center an image on a square gray canvas.

    Args:
        image: H x W x C uint8 image (any channel order).
        input_size: Side length of the output canvas.
        pad_value: Fill value for the uncovered border.

    Returns:
        (canvas, info) where canvas has shape (input_size, input_size, C).
    """
    if image is None or image.ndim < 2 or image.size == 0:
        raise InvalidFrame("Empty frame")

    h, w = image.shape[:2]
    info = compute_letterbox(w, h, input_size)
    new_w, new_h = info.scaled_size
    new_w = min(new_w, input_size)
    new_h = min(new_h, input_size)

    if (new_w, new_h) != (w, h):
        resized = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    else:
        resized = image
    if resized.ndim == 2:
        resized = resized[:, :, np.newaxis]

    channels = resized.shape[2]
    canvas = np.full((input_size, input_size, channels), pad_value, dtype=np.uint8)

    left = min(int(round(info.offset_x)), input_size - new_w)
    top = min(int(round(info.offset_y)), input_size - new_h)
    canvas[top:top + new_h, left:left + new_w] = resized

    return canvas, info
