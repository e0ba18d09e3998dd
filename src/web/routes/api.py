from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Optional

import cv2
import numpy as np
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect

from inference.errors import BackendCallError, InvalidFrame
from ..api_models import DetectResponse, DetectionBatchResponse, HealthResponse
from ..state import ServiceState

router = APIRouter()
ws_router = APIRouter()


def _service(request: Request) -> ServiceState:
    return request.app.state.service


def _decode_image(data: bytes) -> Optional[np.ndarray]:
    if not data:
        return None
    return cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)


@router.post("/detect", response_model=DetectResponse)
def detect(
    request: Request,
    image: UploadFile = File(...),
    timestamp: Optional[float] = Form(None),
):
    """
    One-shot detection on a JPEG upload.

    Form fields:
    - image: JPEG bytes
    - timestamp: capture time in epoch seconds (optional)
    """
    service = _service(request)
    try:
        detections = service.detect(_decode_image(image.file.read()), timestamp)
    except InvalidFrame as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BackendCallError as e:
        logging.error(f"Detection failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"detections": [d.to_dict() for d in detections]}


@router.get("/detections", response_model=DetectionBatchResponse)
def latest_detections(request: Request):
    """Latest batch published by the pipeline session running in this process."""
    service = _service(request)
    session = service.session
    batch = service.latest_batch()
    payload = {
        "running": bool(session is not None and session.running),
        "state": session.state.value if session is not None else "unselected",
    }
    if batch is not None:
        payload.update(batch.to_dict())
    return payload


@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    service = _service(request)
    stats = service.get_system_stats_copy()
    detector = service.detector
    degraded = detector is not None and not detector.available
    return {
        "status": "degraded" if degraded else "ok",
        "detector": service.detector_name,
        "uptime_seconds": int(time.time() - stats["start_time"]),
        "requests": stats["requests"],
        "failures": stats["failures"],
        "last_request_ts": stats["last_request_ts"],
    }


@ws_router.websocket("/ws/detect")
async def detect_stream(websocket: WebSocket):
    """
    Streaming detection: binary JPEG frames in, one text JSON
    `{"detections": [...]}` reply per decodable frame out. Text frames are
    ignored.
    """
    service: ServiceState = websocket.app.state.service
    await websocket.accept()
    logging.info("Detection stream client connected")
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            data = message.get("bytes")
            if data is None:
                # Text frames carry no image
                continue
            recv_ts = time.time()
            try:
                image = await asyncio.to_thread(_decode_image, data)
                detections = await asyncio.to_thread(service.detect, image, recv_ts)
            except (InvalidFrame, BackendCallError) as e:
                logging.warning(f"Stream frame dropped: {e}")
                continue
            await websocket.send_text(json.dumps({"detections": [d.to_dict() for d in detections]}))
    except WebSocketDisconnect:
        logging.info("Detection stream client disconnected")
