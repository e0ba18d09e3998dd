"""
Pipeline module for the live detection system.

The pipeline drives the processing flow:
- Fixed-rate frame sampling from an observation source (FrameScheduler)
- Backend selection and per-frame fallback (BackendOrchestrator)
- The single published detection batch (DetectionPublisher)
- Session lifetime and resource ownership (DetectionSession)
"""

from .state import BackendState, DetectionMode
from .publisher import DetectionPublisher
from .orchestrator import BackendOrchestrator
from .scheduler import FrameScheduler, SchedulerStats
from .session import DetectionSession, build_orchestrator, create_session_from_config, local_model_config

__all__ = [
    "BackendState",
    "DetectionMode",
    "DetectionPublisher",
    "BackendOrchestrator",
    "FrameScheduler",
    "SchedulerStats",
    "DetectionSession",
    "build_orchestrator",
    "create_session_from_config",
    "local_model_config",
]
