"""
Remote detection backends.

Two transports against the same detection service:

- StreamingBackend: a long-lived WebSocket. JPEG frames are sent as binary
  messages and submit() returns immediately; replies arrive as text JSON
  `{"detections": [...]}` on a background receiver task and are handed to a
  callback, out of band from the submission that triggered them.
- HttpBackend: one-shot `POST {base}/api/detect` (multipart JPEG plus a
  timestamp), used whenever the stream is unavailable or a send fails.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional
from urllib.parse import urlparse, urlunparse

import cv2
import httpx
import websockets
from websockets.exceptions import ConnectionClosed

from models.detection import Detection, detections_from_payload
from models.frame import FrameData

from .backend import DetectionBackend
from .errors import BackendCallError, ChannelError

DETECT_PATH = "/api/detect"
STREAM_PATH = "/ws/detect"
DEFAULT_JPEG_QUALITY = 80
DEFAULT_TIMEOUT = 5.0

Connector = Callable[[str], Awaitable[Any]]


def websocket_url(base_url: str, path: str = STREAM_PATH) -> str:
    """
    Derive the streaming endpoint from the service base address.

    http://host:8000 -> ws://host:8000/ws/detect
    https://host     -> wss://host/ws/detect
    """
    parsed = urlparse(base_url)
    scheme = "wss" if parsed.scheme in ("https", "wss") else "ws"
    base_path = parsed.path.rstrip("/")
    return urlunparse((scheme, parsed.netloc, base_path + path, "", "", ""))


def encode_jpeg(frame: FrameData, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """
    JPEG-encode a frame for the wire.

    Raises:
        BackendCallError: If OpenCV cannot encode the frame.
    """
    try:
        image = frame.as_bgr()
    except (ValueError, cv2.error) as e:
        raise BackendCallError(f"Cannot convert frame for encoding: {e}") from e

    ok, buf = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise BackendCallError("JPEG encoding failed")
    return buf.tobytes()


async def _default_connect(url: str) -> Any:
    return await websockets.connect(url)


class StreamingBackend(DetectionBackend):
    """
    Fire-and-forget streaming channel.

    Lifecycle: start() performs the handshake (ChannelError on failure).
    After a disconnect the channel stays closed for the rest of the session;
    on_close is invoked once, and never for a close we initiated ourselves.
    """

    name = "stream"
    origin = "remote"

    def __init__(
        self,
        url: str,
        on_reply: Optional[Callable[[List[Detection]], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        open_timeout: float = DEFAULT_TIMEOUT,
        connect: Optional[Connector] = None,
    ):
        self.url = url
        self._on_reply = on_reply
        self._on_close = on_close
        self._jpeg_quality = jpeg_quality
        self._open_timeout = open_timeout
        self._connect = connect or _default_connect
        self._ws: Any = None
        self._receiver: Optional[asyncio.Task] = None
        self._open = False
        self._closing = False

    @property
    def available(self) -> bool:
        return self._open and not self._closing

    def set_handlers(
        self,
        on_reply: Callable[[List[Detection]], None],
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        """Attach the reply and disconnect callbacks."""
        self._on_reply = on_reply
        self._on_close = on_close

    async def start(self) -> None:
        logging.info(f"Opening detection stream: {self.url}")
        try:
            self._ws = await asyncio.wait_for(self._connect(self.url), self._open_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ChannelError(f"Failed to open stream {self.url}: {e}") from e

        if self._closing:
            await self._ws.close()
            raise ChannelError("Stream closed during handshake")

        self._open = True
        self._receiver = asyncio.create_task(self._receive_loop())
        logging.info("Detection stream connected")

    async def _receive_loop(self) -> None:
        try:
            async for message in self._ws:
                if not isinstance(message, str):
                    continue
                try:
                    detections = detections_from_payload(json.loads(message))
                except ValueError as e:
                    logging.error(f"Failed to parse stream message: {e}")
                    continue
                if self._closing:
                    break
                if self._on_reply is not None:
                    self._on_reply(detections)
        except ConnectionClosed as e:
            logging.warning(f"Detection stream closed: {e}")
        finally:
            self._open = False
            if not self._closing:
                logging.info("Detection stream closed by peer")
                if self._on_close is not None:
                    self._on_close()

    async def submit(self, frame: FrameData) -> None:
        if not self.available:
            raise ChannelError("Stream is not open")
        payload = await asyncio.to_thread(encode_jpeg, frame, self._jpeg_quality)
        try:
            await self._ws.send(payload)
        except Exception as e:
            raise ChannelError(f"Stream send failed: {e}") from e
        return None

    async def close(self) -> None:
        self._closing = True
        self._open = False
        if self._receiver is not None:
            self._receiver.cancel()
            try:
                await self._receiver
            except asyncio.CancelledError:
                pass
            self._receiver = None
        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logging.warning(f"Error closing detection stream: {e}")
            self._ws = None


class HttpBackend(DetectionBackend):
    """One-shot request/response detection over HTTP."""

    name = "http"
    origin = "remote"

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._jpeg_quality = jpeg_quality
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def detect_jpeg(self, jpeg: bytes, timestamp: float) -> List[Detection]:
        """
        POST one JPEG to the service.

        Raises:
            BackendCallError: On transport errors, non-success status, or a
                malformed response body.
        """
        try:
            response = await self._client.post(
                DETECT_PATH,
                files={"image": ("frame.jpg", jpeg, "image/jpeg")},
                data={"timestamp": str(timestamp)},
            )
        except httpx.HTTPError as e:
            raise BackendCallError(f"Detection request failed: {e}") from e

        if not response.is_success:
            raise BackendCallError(f"Detection request failed with status {response.status_code}")

        try:
            return detections_from_payload(response.json())
        except ValueError as e:
            raise BackendCallError(f"Malformed detection response: {e}") from e

    async def submit(self, frame: FrameData) -> List[Detection]:
        jpeg = await asyncio.to_thread(encode_jpeg, frame, self._jpeg_quality)
        started = time.time()
        detections = await self.detect_jpeg(jpeg, frame.timestamp)
        logging.debug(
            f"[HTTP] frame={frame.frame_index} detections={len(detections)} "
            f"latency_ms={(time.time() - started) * 1000:.1f}"
        )
        return detections

    async def close(self) -> None:
        await self._client.aclose()
