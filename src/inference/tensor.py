"""
Tensor codec for single-stage YOLO-style detectors.

Encode: letterboxed H x W x C uint8 image -> (1, 3, S, S) float32 planar RGB
in [0, 1]. All red values come first, then green, then blue; each plane is a
row-major flattening of the S x S grid. A mismatched layout silently
produces garbage detections, so the ordering here must not change.

Decode: OutputTensor is a read-only view over a raw [1, N, 5 + C] output.
Each anchor row is [cx, cy, w, h, objectness, class_0 .. class_{C-1}] with
the box in model-input pixels, center-size format.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .errors import DecodeError, InvalidFrame

BOX_FIELDS = 4
OBJECTNESS_INDEX = 4
CLASS_OFFSET = 5


def encode_tensor(image: np.ndarray, color_order: str = "rgb") -> np.ndarray:
    """
    Pack a square pixel buffer into the model's planar input layout.

    Args:
        image: S x S x 3 (or x 4) uint8 image.
        color_order: "rgb", "rgba", "bgr" or "bgra". Alpha is always dropped.

    Returns:
        float32 array of shape (1, 3, S, S).
    """
    if image is None or image.ndim != 3 or image.size == 0:
        raise InvalidFrame("Expected an H x W x C image")
    h, w, channels = image.shape
    if h != w:
        raise InvalidFrame(f"Expected a square input, got {w}x{h}")
    if channels not in (3, 4):
        raise InvalidFrame(f"Expected 3 or 4 channels, got {channels}")

    rgb = image[:, :, :3]
    if color_order.lower().startswith("bgr"):
        rgb = rgb[:, :, ::-1]

    planar = np.transpose(rgb, (2, 0, 1)).astype(np.float32) / 255.0
    return np.ascontiguousarray(planar[np.newaxis, ...])


class OutputTensor:
    """
    Random-access view over a raw detector output.

    Accepts [1, N, 5 + C] or [N, 5 + C]. No data is copied beyond a dtype
    conversion when the backend returns something other than a float array.
    """

    def __init__(self, raw: np.ndarray, num_classes: Optional[int] = None):
        data = np.asarray(raw)
        if data.ndim == 3:
            if data.shape[0] != 1:
                raise DecodeError(f"Expected batch size 1, got shape {data.shape}")
            data = data[0]
        if data.ndim != 2:
            raise DecodeError(f"Expected output of shape [1, N, 5+C], got {np.shape(raw)}")
        if data.shape[1] <= CLASS_OFFSET:
            raise DecodeError(f"Output rows need at least {CLASS_OFFSET + 1} fields, got {data.shape[1]}")
        if num_classes is not None and data.shape[1] != CLASS_OFFSET + num_classes:
            raise DecodeError(
                f"Output has {data.shape[1] - CLASS_OFFSET} class scores, expected {num_classes}"
            )
        if not np.issubdtype(data.dtype, np.floating):
            data = data.astype(np.float32)
        self._data = data

    @property
    def num_anchors(self) -> int:
        return int(self._data.shape[0])

    @property
    def num_classes(self) -> int:
        return int(self._data.shape[1] - CLASS_OFFSET)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.num_anchors, self._data.shape[1])

    def objectness(self, i: int) -> float:
        return float(self._data[i, OBJECTNESS_INDEX])

    def class_score(self, i: int, j: int) -> float:
        if j < 0 or j >= self.num_classes:
            raise DecodeError(f"Class index {j} out of range [0, {self.num_classes})")
        return float(self._data[i, CLASS_OFFSET + j])

    def box(self, i: int) -> Tuple[float, float, float, float]:
        """Return (cx, cy, w, h) for anchor i in model-input pixels."""
        cx, cy, w, h = self._data[i, :BOX_FIELDS]
        return (float(cx), float(cy), float(w), float(h))

    # Column views for vectorized decoding
    def objectness_column(self) -> np.ndarray:
        return self._data[:, OBJECTNESS_INDEX]

    def class_scores(self) -> np.ndarray:
        return self._data[:, CLASS_OFFSET:]

    def boxes(self) -> np.ndarray:
        return self._data[:, :BOX_FIELDS]
