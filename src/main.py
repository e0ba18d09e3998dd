"""
Main application for the live object detection pipeline.

Samples frames from the configured camera at a fixed rate, runs them
through the configured detection backend (local model, remote service or
synthetic) and keeps the latest detections published. Optionally serves the
detection API alongside, or runs only the detection service.

Usage:
    python src/main.py --config config/config.yaml
    python src/main.py --mode remote --duration 30
    python src/main.py --serve

Arguments:
    --config: Path to configuration file
    --mode: Override detection.mode (local, remote, synthetic)
    --duration: Stop after this many seconds (default: run until interrupted)
    --serve: Run only the detection service (no camera)
"""

import os
import sys
import argparse
import asyncio
import logging
from typing import Dict, Any, Tuple, Optional

import yaml
import uvicorn

from inference.errors import BackendInitError
from inference.onnx_backend import LocalOnnxBackend
from models.config import Config, DETECTION_MODES
from ops.logging import setup_logging
from pipeline.session import create_session_from_config, local_model_config
from web.app import create_app

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not the local override file itself
        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['camera', 'detection', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate camera settings
    camera = config.get('camera') or {}
    backend = camera.get('backend', 'opencv')
    if backend not in ('opencv', 'static'):
        return False, "camera.backend must be one of: opencv, static"
    if backend == 'static':
        if not isinstance(camera.get('image_path'), str) or not camera.get('image_path'):
            return False, "camera.image_path is required when camera.backend is 'static'"
    else:
        if 'device_id' not in camera:
            return False, "Missing camera.device_id"
        if not isinstance(camera['device_id'], (int, str)) or isinstance(camera['device_id'], bool):
            return False, "camera.device_id must be an integer (index) or string (URL)"
        if isinstance(camera['device_id'], int) and camera['device_id'] < 0:
            return False, "camera.device_id integer must be non-negative"

    if 'resolution' in camera:
        if not isinstance(camera['resolution'], list) or len(camera['resolution']) != 2:
            return False, "camera.resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in camera['resolution']):
            return False, "camera.resolution values must be positive integers"

    if 'fps' in camera and (not isinstance(camera['fps'], int) or camera['fps'] <= 0):
        return False, "camera.fps must be a positive integer"

    if 'rotate' in camera and camera['rotate'] not in (0, 90, 180, 270, None):
        return False, "camera.rotate must be one of: 0, 90, 180, 270"

    # Validate detection settings
    detection = config.get('detection') or {}
    mode = detection.get('mode', 'local')
    if mode not in DETECTION_MODES:
        return False, f"detection.mode must be one of: {', '.join(DETECTION_MODES)}"
    if mode == 'local':
        if not isinstance(detection.get('model'), str) or not detection.get('model'):
            return False, "detection.model is required when detection.mode is 'local'"

    if 'conf_threshold' in detection:
        conf = detection['conf_threshold']
        if not _is_number(conf) or not (0 <= conf <= 1):
            return False, "detection.conf_threshold must be between 0 and 1"
    if 'input_size' in detection:
        size = detection['input_size']
        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            return False, "detection.input_size must be a positive integer"
    if 'fps' in detection:
        fps = detection['fps']
        if not _is_number(fps) or fps <= 0:
            return False, "detection.fps must be a positive number"

    # Remote service settings (only needed in remote mode)
    remote = config.get('remote') or {}
    if mode == 'remote' or remote:
        base_url = remote.get('base_url', 'http://localhost:8000')
        if not isinstance(base_url, str) or not base_url.startswith(('http://', 'https://')):
            return False, "remote.base_url must start with http:// or https://"
        if 'timeout' in remote and (not _is_number(remote['timeout']) or remote['timeout'] <= 0):
            return False, "remote.timeout must be a positive number"
        if 'jpeg_quality' in remote:
            quality = remote['jpeg_quality']
            if not isinstance(quality, int) or not (1 <= quality <= 100):
                return False, "remote.jpeg_quality must be an integer between 1 and 100"

    web = config.get('web') or {}
    if 'port' in web and (not isinstance(web['port'], int) or not (0 < web['port'] < 65536)):
        return False, "web.port must be a valid TCP port"

    # Validate log settings
    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


async def load_detector(cfg: Config) -> LocalOnnxBackend:
    """
    Load the local model for the detection service.

    A model that fails to load is logged and left unloaded; the service then
    answers with synthetic detections.
    """
    detector = LocalOnnxBackend(local_model_config(cfg))
    try:
        await detector.start()
    except BackendInitError as e:
        logging.warning(f"Detection service running without a model: {e}")
    return detector


async def run_pipeline(cfg: Config, duration: Optional[float] = None) -> None:
    """Run a detection session, with the web API alongside when enabled."""
    session = create_session_from_config(cfg)
    if not cfg.web.enabled:
        await session.run_for(duration)
        return

    detector = await load_detector(cfg)
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(detector=detector, session=session),
            host=cfg.web.host,
            port=cfg.web.port,
            log_level="info",
        )
    )
    web_task = asyncio.create_task(server.serve())
    logging.info(f"Web interface started on port {cfg.web.port}")
    try:
        await session.run_for(duration)
    finally:
        server.should_exit = True
        await web_task
        await detector.close()


def main():
    """Main application function."""
    # Parse command-line arguments
    parser = argparse.ArgumentParser(description='Live Object Detection Pipeline')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--mode', type=str, choices=DETECTION_MODES,
                        help='Override detection.mode')
    parser.add_argument('--duration', type=float, default=None,
                        help='Stop after this many seconds')
    parser.add_argument('--serve', action='store_true',
                        help='Run only the detection service')
    args = parser.parse_args()

    # Load configuration
    config = load_config(args.config)
    if args.mode:
        config.setdefault('detection', {})['mode'] = args.mode

    # Validate configuration
    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    # Setup logging
    setup_logging(config['log_path'], config['log_level'])

    cfg = Config.from_dict(config)

    if args.serve:
        logging.info(f"Starting detection service on {cfg.web.host}:{cfg.web.port}")
        detector = asyncio.run(load_detector(cfg))
        uvicorn.run(
            create_app(detector=detector),
            host=cfg.web.host,
            port=cfg.web.port,
            log_level="info",
        )
        return

    logging.info(f"Starting Live Object Detection (mode={cfg.detection.mode}, fps={cfg.detection.fps})")
    try:
        asyncio.run(run_pipeline(cfg, args.duration))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")

    logging.info("Live Object Detection stopped")


if __name__ == "__main__":
    main()
