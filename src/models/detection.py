"""
Detection models for object detection results.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class Detection:
    """
    A single detection with a normalized bounding box.

    Attributes:
        label: Human-readable class name.
        score: Confidence in [0, 1] (objectness * class score).
        xmin, ymin, xmax, ymax: Box corners normalized to the source frame.
        frame_id: Index of the frame the detection belongs to.
        capture_ts: When the frame was acquired (epoch seconds).
        recv_ts: When the backend result was received.
        inference_ts: When decoding completed.
    """
    label: str
    score: float
    xmin: float
    ymin: float
    xmax: float
    ymax: float
    frame_id: Optional[int] = None
    capture_ts: Optional[float] = None
    recv_ts: Optional[float] = None
    inference_ts: Optional[float] = None

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.xmin + self.xmax) / 2, (self.ymin + self.ymax) / 2)

    def is_valid(self) -> bool:
        """True if the box is non-empty and inside the unit square."""
        return 0.0 <= self.xmin < self.xmax <= 1.0 and 0.0 <= self.ymin < self.ymax <= 1.0

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Return integer (x1, y1, x2, y2) for a frame of the given size."""
        return (
            int(self.xmin * width),
            int(self.ymin * height),
            int(self.xmax * width),
            int(self.ymax * height),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "score": self.score,
            "xmin": self.xmin,
            "ymin": self.ymin,
            "xmax": self.xmax,
            "ymax": self.ymax,
            "frame_id": self.frame_id,
            "capture_ts": self.capture_ts,
            "recv_ts": self.recv_ts,
            "inference_ts": self.inference_ts,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Detection":
        """
        Adapter: Create from the wire format used by the remote service.

        Raises:
            KeyError / TypeError / ValueError: If a required field is missing or
            not numeric.
        """
        def _opt_float(key: str) -> Optional[float]:
            value = d.get(key)
            return float(value) if value is not None else None

        frame_id = d.get("frame_id")
        return cls(
            label=str(d["label"]),
            score=float(d["score"]),
            xmin=float(d["xmin"]),
            ymin=float(d["ymin"]),
            xmax=float(d["xmax"]),
            ymax=float(d["ymax"]),
            frame_id=int(frame_id) if frame_id is not None else None,
            capture_ts=_opt_float("capture_ts"),
            recv_ts=_opt_float("recv_ts"),
            inference_ts=_opt_float("inference_ts"),
        )


@dataclass(frozen=True)
class DetectionBatch:
    """
    All detections for one frame; the unit of publication.

    Attributes:
        detections: Detections in anchor order.
        frame_id: Frame the batch was produced for. None for out-of-band
            stream replies, which carry no client-side frame id.
        origin: "local", "remote", "synthetic" or "empty".
        published_ts: When the batch was built.
    """
    detections: Tuple[Detection, ...] = ()
    frame_id: Optional[int] = None
    origin: str = "empty"
    published_ts: float = field(default_factory=time.time)

    @classmethod
    def of(
        cls,
        detections: Iterable[Detection],
        frame_id: Optional[int] = None,
        origin: str = "local",
    ) -> "DetectionBatch":
        return cls(detections=tuple(detections), frame_id=frame_id, origin=origin)

    @classmethod
    def empty(cls, frame_id: Optional[int] = None) -> "DetectionBatch":
        return cls(detections=(), frame_id=frame_id, origin="empty")

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detections": [d.to_dict() for d in self.detections],
            "frame_id": self.frame_id,
            "origin": self.origin,
            "published_ts": self.published_ts,
        }


def detections_from_payload(payload: Any) -> List[Detection]:
    """
    Adapter: Parse a `{"detections": [...]}` payload from the remote service.

    Entries that cannot be parsed are skipped.

    Raises:
        ValueError: If the payload is not an object with a detections list.
    """
    if not isinstance(payload, dict):
        raise ValueError("Detection payload must be a JSON object")
    items = payload.get("detections")
    if items is None:
        raise ValueError("Detection payload has no 'detections' field")
    if not isinstance(items, list):
        raise ValueError("'detections' must be a list")

    out: List[Detection] = []
    for item in items:
        if not isinstance(item, dict):
            logging.debug(f"Skipping non-object detection entry: {item!r}")
            continue
        try:
            out.append(Detection.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logging.debug(f"Skipping malformed detection entry: {e}")
            continue
    return out
