"""
Synthetic detection backend.

Always available. Produces a fixed-shape batch (same labels, same number of
boxes) with randomized jitter, so demos and tests see live-looking output
and the pipeline never goes dark when a real backend fails.
"""

from __future__ import annotations

import time
from typing import List, Optional

import numpy as np

from models.detection import Detection
from models.frame import FrameData

from .backend import DetectionBackend


# label, base score, score jitter, (xmin, ymin, xmax, ymax) base, box jitter
_TEMPLATE = (
    ("person", 0.89, 0.10, (0.10, 0.10, 0.60, 0.90), (0.10, 0.10, 0.20, 0.10)),
    ("cell phone", 0.76, 0.15, (0.70, 0.20, 0.90, 0.50), (0.10, 0.10, 0.05, 0.10)),
)


class SyntheticBackend(DetectionBackend):
    name = "synthetic"
    origin = "synthetic"

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = rng if rng is not None else np.random.default_rng()

    def generate(self, frame_id: Optional[int] = None, capture_ts: Optional[float] = None) -> List[Detection]:
        """Build one synthetic batch. Boxes always stay inside the unit square."""
        now = time.time()
        if capture_ts is None:
            capture_ts = now

        out: List[Detection] = []
        for label, score, score_jitter, base, jitter in _TEMPLATE:
            u = self._rng.random(5)
            xmin = base[0] + u[0] * jitter[0]
            ymin = base[1] + u[1] * jitter[1]
            xmax = min(1.0, base[2] + u[2] * jitter[2])
            ymax = min(1.0, base[3] + u[3] * jitter[3])
            out.append(
                Detection(
                    label=label,
                    score=min(1.0, score + u[4] * score_jitter),
                    xmin=float(xmin),
                    ymin=float(ymin),
                    xmax=float(xmax),
                    ymax=float(ymax),
                    frame_id=frame_id,
                    capture_ts=capture_ts,
                    recv_ts=now,
                    inference_ts=now,
                )
            )
        return out

    async def submit(self, frame: FrameData) -> List[Detection]:
        return self.generate(frame_id=frame.frame_index, capture_ts=frame.timestamp)
