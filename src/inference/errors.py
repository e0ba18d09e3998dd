"""
Error taxonomy for the detection pipeline.

Every per-frame error is absorbed by the orchestrator; none of these is
allowed to escape the capture loop.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for detection pipeline errors."""


class InvalidFrame(PipelineError):
    """Frame has zero area or an unusable pixel layout. The cycle is skipped."""


class BackendError(PipelineError):
    """Base class for inference backend failures."""


class BackendInitError(BackendError):
    """Local backend failed to load. Sticky for the session."""


class BackendCallError(BackendError):
    """A single inference call failed. Triggers per-frame fallback."""


class ChannelError(BackendError):
    """Streaming channel could not be opened or a send failed."""


class DecodeError(PipelineError):
    """Output tensor has the wrong shape or an out-of-range class index."""
