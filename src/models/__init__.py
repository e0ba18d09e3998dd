"""
Typed models for the detection application.

Frames, detections and the typed view of the YAML config. Use the
from_dict/to_dict adapters to convert from raw dicts.
"""

from .frame import FrameData
from .detection import Detection, DetectionBatch, detections_from_payload
from .config import (
    Config,
    CameraConfig,
    DetectionConfig,
    RemoteConfig,
    WebConfig,
    DETECTION_MODES,
)

__all__ = [
    # Frame
    "FrameData",
    # Detection
    "Detection",
    "DetectionBatch",
    "detections_from_payload",
    # Config
    "Config",
    "CameraConfig",
    "DetectionConfig",
    "RemoteConfig",
    "WebConfig",
    "DETECTION_MODES",
]
