"""
Backend state machine states.
"""

from __future__ import annotations

from enum import Enum


class BackendState(str, Enum):
    """Per-session backend state, mutated only by the orchestrator."""

    UNSELECTED = "unselected"
    LOCAL_READY = "local_ready"
    LOCAL_FAILED = "local_failed"
    REMOTE_CONNECTING = "remote_connecting"
    REMOTE_OPEN = "remote_open"
    REMOTE_CLOSED = "remote_closed"
    FALLBACK = "fallback"


class DetectionMode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    SYNTHETIC = "synthetic"
