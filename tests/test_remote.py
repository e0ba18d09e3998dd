"""
Tests for the remote detection transports.
"""

import asyncio
import json
import time

import cv2
import httpx
import numpy as np
import pytest

from inference.errors import BackendCallError, ChannelError
from inference.remote_backend import HttpBackend, StreamingBackend, encode_jpeg, websocket_url
from models.frame import FrameData

REPLY = {
    "detections": [
        {"label": "person", "score": 0.88, "xmin": 0.1, "ymin": 0.2, "xmax": 0.4, "ymax": 0.9},
        {"label": "cup", "score": 0.5, "xmin": 0.6, "ymin": 0.6, "xmax": 0.7, "ymax": 0.8, "frame_id": 3},
    ]
}


def make_frame(color_order="bgr", channels=3):
    image = np.zeros((48, 64, channels), dtype=np.uint8)
    image[:, :, 0] = 255
    return FrameData.from_numpy(image, timestamp=1700000000.5, frame_index=7, color_order=color_order)


def http_backend(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://detector")
    return HttpBackend("http://detector", client=client)


class TestWebsocketUrl:
    @pytest.mark.parametrize("base,expected", [
        ("http://localhost:8000", "ws://localhost:8000/ws/detect"),
        ("https://detector.example.com", "wss://detector.example.com/ws/detect"),
        ("http://host:9000/", "ws://host:9000/ws/detect"),
        ("https://host/prefix", "wss://host/prefix/ws/detect"),
    ])
    def test_scheme_mapping(self, base, expected):
        assert websocket_url(base) == expected


class TestEncodeJpeg:
    def test_bgr_frame(self):
        data = encode_jpeg(make_frame())

        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape == (48, 64, 3)
        # Channel 0 was blue in a BGR frame
        assert decoded[:, :, 0].mean() > 200

    def test_rgba_frame_converted(self):
        data = encode_jpeg(make_frame(color_order="rgba", channels=4))

        decoded = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape == (48, 64, 3)
        # Channel 0 was red in an RGBA frame, so it lands in OpenCV's channel 2
        assert decoded[:, :, 2].mean() > 200


class TestHttpBackend:
    def test_posts_multipart_and_parses(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = request.read()
            captured["content_type"] = request.headers["content-type"]
            return httpx.Response(200, json=REPLY)

        async def scenario():
            backend = http_backend(handler)
            try:
                return await backend.submit(make_frame())
            finally:
                await backend.close()

        detections = asyncio.run(scenario())

        assert captured["path"] == "/api/detect"
        assert captured["content_type"].startswith("multipart/form-data")
        assert b'name="image"' in captured["body"]
        assert b'name="timestamp"' in captured["body"]
        assert b"1700000000.5" in captured["body"]
        assert [d.label for d in detections] == ["person", "cup"]
        assert detections[1].frame_id == 3

    def test_error_status_raises(self):
        async def scenario():
            backend = http_backend(lambda request: httpx.Response(503, text="overloaded"))
            try:
                await backend.submit(make_frame())
            finally:
                await backend.close()

        with pytest.raises(BackendCallError, match="503"):
            asyncio.run(scenario())

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            backend = http_backend(handler)
            try:
                await backend.submit(make_frame())
            finally:
                await backend.close()

        with pytest.raises(BackendCallError):
            asyncio.run(scenario())

    def test_malformed_body_raises(self):
        async def scenario():
            backend = http_backend(lambda request: httpx.Response(200, json={"boxes": []}))
            try:
                await backend.detect_jpeg(b"\xff\xd8", time.time())
            finally:
                await backend.close()

        with pytest.raises(BackendCallError):
            asyncio.run(scenario())

    def test_malformed_entries_skipped(self):
        payload = {"detections": [{"label": "person"}, REPLY["detections"][0]]}

        async def scenario():
            backend = http_backend(lambda request: httpx.Response(200, json=payload))
            try:
                return await backend.detect_jpeg(b"\xff\xd8", time.time())
            finally:
                await backend.close()

        detections = asyncio.run(scenario())

        assert len(detections) == 1


class FakeConnection:
    def __init__(self):
        self.sent = []
        self.closed = False
        self.queue = asyncio.Queue()

    async def send(self, data):
        self.sent.append(data)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self.queue.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def close(self):
        self.closed = True
        self.queue.put_nowait(None)


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


class TestStreamingBackend:
    def test_handshake_failure_raises_channel_error(self):
        async def connect(url):
            raise OSError("refused")

        async def scenario():
            await StreamingBackend("ws://detector/ws/detect", connect=connect).start()

        with pytest.raises(ChannelError):
            asyncio.run(scenario())

    def test_handshake_timeout(self):
        async def connect(url):
            await asyncio.sleep(10)

        async def scenario():
            await StreamingBackend("ws://detector/ws/detect", connect=connect, open_timeout=0.05).start()

        with pytest.raises(ChannelError):
            asyncio.run(scenario())

    def test_submit_before_open_raises(self):
        backend = StreamingBackend("ws://detector/ws/detect")

        with pytest.raises(ChannelError):
            asyncio.run(backend.submit(make_frame()))

    def test_replies_delivered_to_handler(self):
        async def scenario():
            conn = FakeConnection()
            replies = []

            async def connect(url):
                return conn

            backend = StreamingBackend("ws://detector/ws/detect", on_reply=replies.append, connect=connect)
            await backend.start()
            result = await backend.submit(make_frame())
            conn.queue.put_nowait(b"binary frames are ignored")
            conn.queue.put_nowait("not json")
            conn.queue.put_nowait(json.dumps(REPLY))
            await settle()
            await backend.close()
            return result, conn, replies

        result, conn, replies = asyncio.run(scenario())

        assert result is None
        assert len(conn.sent) == 1
        assert conn.sent[0][:2] == b"\xff\xd8"
        assert len(replies) == 1
        assert [d.label for d in replies[0]] == ["person", "cup"]
        assert conn.closed is True

    def test_peer_close_reported_once(self):
        async def scenario():
            conn = FakeConnection()
            closes = []

            async def connect(url):
                return conn

            backend = StreamingBackend("ws://detector/ws/detect", on_close=lambda: closes.append(1), connect=connect)
            await backend.start()
            conn.queue.put_nowait(None)
            await settle()
            available = backend.available
            await backend.close()
            return closes, available

        closes, available = asyncio.run(scenario())

        assert closes == [1]
        assert available is False

    def test_own_close_not_reported(self):
        async def scenario():
            conn = FakeConnection()
            closes = []

            async def connect(url):
                return conn

            backend = StreamingBackend("ws://detector/ws/detect", on_close=lambda: closes.append(1), connect=connect)
            await backend.start()
            await backend.close()
            await settle()
            return closes, backend.available

        closes, available = asyncio.run(scenario())

        assert closes == []
        assert available is False
