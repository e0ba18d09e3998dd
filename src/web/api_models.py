from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class DetectionModel(BaseModel):
    label: str
    score: float
    xmin: float = Field(..., description="Left edge, normalized to [0, 1]")
    ymin: float = Field(..., description="Top edge, normalized to [0, 1]")
    xmax: float = Field(..., description="Right edge, normalized to [0, 1]")
    ymax: float = Field(..., description="Bottom edge, normalized to [0, 1]")
    frame_id: Optional[int] = None
    capture_ts: Optional[float] = None
    recv_ts: Optional[float] = None
    inference_ts: Optional[float] = None


class DetectResponse(BaseModel):
    detections: List[DetectionModel]


class DetectionBatchResponse(BaseModel):
    """Latest batch published by the running pipeline session."""
    running: bool
    state: str = Field(..., description="Backend state of the session")
    frame_id: Optional[int] = None
    origin: Optional[str] = Field(None, description="local|remote|synthetic|empty")
    published_ts: Optional[float] = None
    detections: List[DetectionModel] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = Field(..., description="ok|degraded")
    detector: str
    uptime_seconds: int
    requests: int
    failures: int
    last_request_ts: Optional[float] = None
