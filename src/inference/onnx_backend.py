"""
Local inference backend (onnxruntime).

Runs a YOLOv5-style ONNX export on-device:
letterbox -> planar tensor -> session.run -> extract.

onnxruntime is imported lazily so the rest of the pipeline (remote and
synthetic modes) works on machines without it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from models.detection import Detection
from models.frame import FrameData
from preprocess.letterbox import DEFAULT_INPUT_SIZE, LetterboxInfo, letterbox

from .backend import DetectionBackend
from .errors import BackendCallError, BackendInitError
from .extractor import DEFAULT_CONF_THRESHOLD, extract_detections
from .labels import COCO_CLASSES
from .tensor import OutputTensor, encode_tensor


class InferenceEngine(Protocol):
    """Opaque execution engine: accepts (1, 3, S, S), returns (1, N, 5 + C)."""

    def run(self, tensor: np.ndarray) -> np.ndarray:
        ...


class OnnxRuntimeEngine:
    """Thin wrapper around onnxruntime.InferenceSession."""

    def __init__(self, model_path: str, providers: Optional[Sequence[str]] = None):
        try:
            import onnxruntime as ort  # type: ignore
        except ImportError as e:  # pragma: no cover
            raise BackendInitError(
                "onnxruntime is not installed. Install with `pip install onnxruntime` "
                "or switch detection.mode to 'remote' or 'synthetic'."
            ) from e

        try:
            self._session = ort.InferenceSession(
                model_path,
                providers=list(providers) if providers else ["CPUExecutionProvider"],
            )
        except Exception as e:
            raise BackendInitError(f"Failed to load model {model_path}: {e}") from e

        self._input_name = self._session.get_inputs()[0].name

    def run(self, tensor: np.ndarray) -> np.ndarray:
        outputs = self._session.run(None, {self._input_name: tensor})
        return np.asarray(outputs[0])


@dataclass(frozen=True)
class LocalModelConfig:
    model: str
    input_size: int = DEFAULT_INPUT_SIZE
    conf_threshold: float = DEFAULT_CONF_THRESHOLD
    labels: Sequence[str] = tuple(COCO_CLASSES)
    providers: Optional[Sequence[str]] = None


EngineFactory = Callable[[LocalModelConfig], InferenceEngine]


def _default_engine_factory(cfg: LocalModelConfig) -> InferenceEngine:
    return OnnxRuntimeEngine(cfg.model, providers=cfg.providers)


class LocalOnnxBackend(DetectionBackend):
    """
    On-device detection backend.

    start() loads the model once; a failure there is sticky for the session
    (the orchestrator will not retry). Per-call failures raise
    BackendCallError and are not sticky.
    """

    name = "local"
    origin = "local"

    def __init__(self, cfg: LocalModelConfig, engine_factory: Optional[EngineFactory] = None):
        self.cfg = cfg
        self._engine_factory = engine_factory or _default_engine_factory
        self._engine: Optional[InferenceEngine] = None

    @property
    def available(self) -> bool:
        return self._engine is not None

    async def start(self) -> None:
        if self._engine is not None:
            return
        logging.info(f"Loading local model: {self.cfg.model}")
        try:
            self._engine = await asyncio.to_thread(self._engine_factory, self.cfg)
        except BackendInitError:
            raise
        except Exception as e:
            raise BackendInitError(f"Failed to initialize local backend: {e}") from e
        logging.info("Local model loaded")

    def _prepare(self, frame: FrameData) -> Tuple[np.ndarray, LetterboxInfo]:
        canvas, info = letterbox(frame.frame, self.cfg.input_size)
        tensor = encode_tensor(canvas, frame.color_order)
        return tensor, info

    def _infer(self, tensor: np.ndarray) -> Any:
        if self._engine is None:
            raise BackendCallError("Local backend is not loaded")
        try:
            return self._engine.run(tensor)
        except Exception as e:
            raise BackendCallError(f"Local inference failed: {e}") from e

    def _decode(self, raw: Any, info: LetterboxInfo, frame: FrameData, recv_ts: float) -> List[Detection]:
        return extract_detections(
            OutputTensor(raw),
            info,
            self.cfg.labels,
            conf_threshold=self.cfg.conf_threshold,
            frame_id=frame.frame_index,
            capture_ts=frame.timestamp,
            recv_ts=recv_ts,
        )

    def detect(self, frame: FrameData) -> List[Detection]:
        """Synchronous detection, used by the companion web service."""
        tensor, info = self._prepare(frame)
        raw = self._infer(tensor)
        return self._decode(raw, info, frame, time.time())

    async def submit(self, frame: FrameData) -> List[Detection]:
        tensor, info = await asyncio.to_thread(self._prepare, frame)
        raw = await asyncio.to_thread(self._infer, tensor)
        detections = self._decode(raw, info, frame, time.time())
        logging.debug(f"[LOCAL] frame={frame.frame_index} detections={len(detections)}")
        return detections

    async def close(self) -> None:
        self._engine = None
