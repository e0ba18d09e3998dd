"""
Observation layer for pluggable frame sources.

This layer abstracts where frames come from (camera, video file, still
image) from the detection pipeline. Each source implements the
ObservationSource interface and returns FrameData objects.
"""

from typing import Any, Dict

from .base import ObservationSource, ObservationConfig
from .opencv_source import OpenCVSource, OpenCVSourceConfig
from .static_source import StaticSource, StaticSourceConfig


def create_source_from_config(camera_cfg: Dict[str, Any], source_id: str = "camera") -> ObservationSource:
    """
    Factory: build a source from the camera config section.

    camera.backend "opencv" (default) opens device_id with OpenCV;
    "static" serves camera.image_path on every read.
    """
    backend = (camera_cfg.get("backend") or "opencv").lower()
    if backend == "static":
        return StaticSource(
            StaticSourceConfig(source_id=source_id, image_path=camera_cfg.get("image_path"))
        )
    if backend == "opencv":
        return OpenCVSource(OpenCVSourceConfig.from_camera_config(camera_cfg, source_id=source_id))
    raise ValueError(f"Unknown camera backend: {backend}")


__all__ = [
    "ObservationSource",
    "ObservationConfig",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "StaticSource",
    "StaticSourceConfig",
    "create_source_from_config",
]
