"""
Detection extractor.

Turns a decoded OutputTensor into normalized, source-frame detections:
confidence filtering, class argmax, letterbox inversion and clamping.
Overlapping boxes are kept as-is (no suppression).
"""

from __future__ import annotations

import time
from typing import List, Optional, Sequence

import numpy as np

from models.detection import Detection
from preprocess.letterbox import LetterboxInfo

from .errors import DecodeError
from .tensor import OutputTensor

DEFAULT_CONF_THRESHOLD = 0.25


def extract_detections(
    output: OutputTensor,
    info: LetterboxInfo,
    labels: Sequence[str],
    conf_threshold: float = DEFAULT_CONF_THRESHOLD,
    frame_id: Optional[int] = None,
    capture_ts: Optional[float] = None,
    recv_ts: Optional[float] = None,
) -> List[Detection]:
    """
    Decode anchors into detections, in anchor index order.

    An anchor survives if objectness >= conf_threshold and
    objectness * max(class scores) >= conf_threshold, and its box still has
    positive area after mapping back to the source frame and clamping.
    Class ties resolve to the lowest class index.

    Args:
        output: Decoded model output.
        info: Letterbox parameters used to build the model input.
        labels: Class-name table indexed by class id.
        conf_threshold: Confidence floor, applied to objectness and final score.
        frame_id: Frame identifier copied onto every detection.
        capture_ts: Frame acquisition time.
        recv_ts: Time the backend result was received.

    Raises:
        DecodeError: If a surviving anchor's class index has no label.
    """
    objectness = output.objectness_column()
    candidates = np.flatnonzero(objectness >= conf_threshold)
    if candidates.size == 0:
        return []

    scores = output.class_scores()[candidates]
    class_ids = np.argmax(scores, axis=1)
    max_scores = scores[np.arange(candidates.size), class_ids]
    confidence = objectness[candidates] * max_scores

    keep = confidence >= conf_threshold
    candidates = candidates[keep]
    class_ids = class_ids[keep]
    confidence = confidence[keep]
    if candidates.size == 0:
        return []

    boxes = output.boxes()[candidates].astype(np.float64)
    cx, cy, w, h = boxes[:, 0], boxes[:, 1], boxes[:, 2], boxes[:, 3]

    x1 = (cx - w / 2 - info.offset_x) / info.scale
    y1 = (cy - h / 2 - info.offset_y) / info.scale
    x2 = (cx + w / 2 - info.offset_x) / info.scale
    y2 = (cy + h / 2 - info.offset_y) / info.scale

    xmin = np.maximum(0.0, x1 / info.source_width)
    ymin = np.maximum(0.0, y1 / info.source_height)
    xmax = np.minimum(1.0, x2 / info.source_width)
    ymax = np.minimum(1.0, y2 / info.source_height)

    valid = (xmax > xmin) & (ymax > ymin)

    inference_ts = time.time()
    detections: List[Detection] = []
    for k in np.flatnonzero(valid):
        class_id = int(class_ids[k])
        if class_id >= len(labels):
            raise DecodeError(f"Class index {class_id} has no label (table size {len(labels)})")
        detections.append(
            Detection(
                label=labels[class_id],
                score=float(confidence[k]),
                xmin=float(xmin[k]),
                ymin=float(ymin[k]),
                xmax=float(xmax[k]),
                ymax=float(ymax[k]),
                frame_id=frame_id,
                capture_ts=capture_ts,
                recv_ts=recv_ts,
                inference_ts=inference_ts,
            )
        )

    return detections
