"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
camera:
  backend: "opencv"
  device_id: 0
  resolution: [640, 480]
  fps: 30

detection:
  mode: "local"
  conf_threshold: 0.25
  input_size: 640
  fps: 10
  model: "models/yolov5n.onnx"

remote:
  base_url: "http://localhost:8000"
  timeout: 5.0

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "camera": {
            "backend": "opencv",
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
        },
        "detection": {
            "mode": "local",
            "conf_threshold": 0.25,
            "input_size": 640,
            "fps": 10,
            "model": "models/yolov5n.onnx",
        },
        "remote": {
            "base_url": "http://localhost:8000",
            "timeout": 5.0,
            "jpeg_quality": 80,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def bgr_image():
    """A 480x640 BGR frame with a little structure."""
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    image[100:300, 200:400] = (0, 128, 255)
    return image
