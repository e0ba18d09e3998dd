"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

DETECTION_MODES = ("local", "remote", "synthetic")


@dataclass
class CameraConfig:
    """Camera configuration."""
    backend: str = "opencv"
    device_id: Union[int, str] = 0
    image_path: Optional[str] = None
    loop_file: bool = False
    resolution: List[int] = field(default_factory=lambda: [640, 480])
    fps: int = 30
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            backend=d.get("backend", "opencv"),
            device_id=d.get("device_id", 0),
            image_path=d.get("image_path"),
            loop_file=d.get("loop_file", False),
            resolution=d.get("resolution", [640, 480]),
            fps=d.get("fps", 30),
            swap_rb=d.get("swap_rb", False),
            rotate=d.get("rotate", 0) or 0,
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "device_id": self.device_id,
            "image_path": self.image_path,
            "loop_file": self.loop_file,
            "resolution": self.resolution,
            "fps": self.fps,
            "swap_rb": self.swap_rb,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass
class DetectionConfig:
    """
    Detection pipeline configuration.

    Attributes:
        mode: "local" (on-device model), "remote" (detection service) or
            "synthetic" (generated boxes for demos/tests).
        conf_threshold: Confidence floor for objectness and final score.
        input_size: Side of the square model input.
        fps: Sampling cadence. 10 Hz by default; lower (e.g. 2) for heavy
            local models.
        model: Path to the ONNX model for local mode.
        labels_path: Optional YAML list overriding the COCO label table.
        drop_stale: Drop results for frames older than the newest published one.
        providers: onnxruntime execution providers.
    """
    mode: str = "local"
    conf_threshold: float = 0.25
    input_size: int = 640
    fps: float = 10.0
    model: str = "models/yolov5n.onnx"
    labels_path: Optional[str] = None
    drop_stale: bool = True
    providers: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            mode=d.get("mode", "local"),
            conf_threshold=d.get("conf_threshold", 0.25),
            input_size=d.get("input_size", 640),
            fps=d.get("fps", 10.0),
            model=d.get("model", "models/yolov5n.onnx"),
            labels_path=d.get("labels_path"),
            drop_stale=d.get("drop_stale", True),
            providers=d.get("providers"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "mode": self.mode,
            "conf_threshold": self.conf_threshold,
            "input_size": self.input_size,
            "fps": self.fps,
            "model": self.model,
            "drop_stale": self.drop_stale,
        }
        if self.labels_path is not None:
            d["labels_path"] = self.labels_path
        if self.providers is not None:
            d["providers"] = self.providers
        return d


@dataclass
class RemoteConfig:
    """Remote detection service configuration."""
    base_url: str = "http://localhost:8000"
    timeout: float = 5.0
    jpeg_quality: int = 80
    use_stream: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RemoteConfig":
        return cls(
            base_url=d.get("base_url", "http://localhost:8000"),
            timeout=d.get("timeout", 5.0),
            jpeg_quality=d.get("jpeg_quality", 80),
            use_stream=d.get("use_stream", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "timeout": self.timeout,
            "jpeg_quality": self.jpeg_quality,
            "use_stream": self.use_stream,
        }


@dataclass
class WebConfig:
    """Companion web service configuration."""
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(
            enabled=d.get("enabled", False),
            host=d.get("host", "0.0.0.0"),
            port=d.get("port", 8000),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "host": self.host, "port": self.port}


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    camera: CameraConfig = field(default_factory=CameraConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log_path: str = "logs/detection.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            detection=DetectionConfig.from_dict(d.get("detection", {}) or {}),
            remote=RemoteConfig.from_dict(d.get("remote", {}) or {}),
            web=WebConfig.from_dict(d.get("web", {}) or {}),
            log_path=d.get("log_path", "logs/detection.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "camera": self.camera.to_dict(),
            "detection": self.detection.to_dict(),
            "remote": self.remote.to_dict(),
            "web": self.web.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
