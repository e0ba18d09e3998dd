"""
FastAPI application factory for the detection service.

Routes:
- /api/detect      -> one-shot detection on a JPEG upload
- /ws/detect       -> streaming detection over a WebSocket
- /api/detections  -> latest batch published by the local pipeline session
- /api/health      -> service health
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inference.onnx_backend import LocalOnnxBackend
from .routes import api
from .state import ServiceState


def create_app(detector: Optional[LocalOnnxBackend] = None, session=None) -> FastAPI:
    """
    Create the FastAPI app and wire routes.

    Args:
        detector: Loaded local backend serving detection requests. When None
            (or not loaded) requests are answered with synthetic detections.
        session: DetectionSession whose published batch /api/detections reports.
    """
    app = FastAPI(
        title="Live Detection",
        version="0.1.0",
        description="Object detection service for live camera clients",
    )

    # Browser clients connect from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = ServiceState(detector=detector, session=session)

    app.include_router(api.router, prefix="/api")
    app.include_router(api.ws_router)

    return app
