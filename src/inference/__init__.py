"""
Inference layer: tensor codec, detection extraction and execution backends.

Backends (local onnxruntime, remote stream/HTTP, synthetic) live in their own
modules and are imported from there; only the dependency-free pieces are
re-exported here.
"""

from .errors import (
    PipelineError,
    InvalidFrame,
    BackendError,
    BackendInitError,
    BackendCallError,
    ChannelError,
    DecodeError,
)
from .labels import COCO_CLASSES, load_labels
from .tensor import OutputTensor, encode_tensor

__all__ = [
    "PipelineError",
    "InvalidFrame",
    "BackendError",
    "BackendInitError",
    "BackendCallError",
    "ChannelError",
    "DecodeError",
    "COCO_CLASSES",
    "load_labels",
    "OutputTensor",
    "encode_tensor",
]
