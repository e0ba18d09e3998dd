import logging
import threading
import time
from typing import List, Optional

import numpy as np

from inference.errors import DecodeError, InvalidFrame
from inference.onnx_backend import LocalOnnxBackend
from inference.synthetic import SyntheticBackend
from models.detection import Detection, DetectionBatch
from models.frame import FrameData


class ServiceState:
    """
    State shared between the detection endpoints of one app instance.

    Holds the detector that serves /api/detect and /ws/detect and, when the
    app runs next to a pipeline, the session whose published batch is
    exposed on /api/detections.
    """

    def __init__(self, detector: Optional[LocalOnnxBackend] = None, session=None):
        self.detector = detector
        self.synthetic = SyntheticBackend()
        self.session = session
        self._lock = threading.Lock()
        self._frame_index = 0
        self.system_stats = {
            "start_time": time.time(),
            "requests": 0,
            "failures": 0,
            "last_request_ts": None,
        }

    @property
    def detector_name(self) -> str:
        if self.detector is not None and self.detector.available:
            return self.detector.name
        return self.synthetic.name

    def _next_frame(self, image: np.ndarray, timestamp: float) -> FrameData:
        with self._lock:
            self._frame_index += 1
            frame_index = self._frame_index
            self.system_stats["requests"] += 1
            self.system_stats["last_request_ts"] = time.time()
        return FrameData.from_numpy(image, timestamp=timestamp, frame_index=frame_index, source="remote")

    def detect(self, image: Optional[np.ndarray], timestamp: Optional[float] = None) -> List[Detection]:
        """
        Run detection on a decoded BGR image.

        Uses the local model when one is loaded, synthetic boxes otherwise.
        A model output that cannot be decoded yields no detections.

        Raises:
            InvalidFrame: If the image is missing or empty.
            BackendCallError: If the local model fails on this image.
        """
        if image is None or image.size == 0:
            raise InvalidFrame("Image could not be decoded")
        frame = self._next_frame(image, timestamp if timestamp is not None else time.time())
        try:
            if self.detector is not None and self.detector.available:
                return self.detector.detect(frame)
            return self.synthetic.generate(frame_id=frame.frame_index, capture_ts=frame.timestamp)
        except DecodeError as e:
            logging.warning(f"Decode failed for request frame {frame.frame_index}: {e}")
            self._count_failure()
            return []
        except Exception:
            self._count_failure()
            raise

    def _count_failure(self) -> None:
        with self._lock:
            self.system_stats["failures"] += 1

    def latest_batch(self) -> Optional[DetectionBatch]:
        if self.session is None:
            return None
        return self.session.latest

    def get_system_stats_copy(self):
        """Return a shallow copy of current system stats."""
        with self._lock:
            return dict(self.system_stats)
