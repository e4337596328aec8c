"""Shared fixtures: fake clock, shrunk parameters and fake remote services."""

from __future__ import annotations

import asyncio

import cv2
import numpy as np
import pytest
from aiohttp import web

from sorting_station.event_log import EventLog
from sorting_station.params import Parameters


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def jpeg_bytes(width: int = 64, height: int = 48, color=(0, 128, 255)) -> bytes:
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:] = color
    ok, buf = cv2.imencode(".jpg", frame)
    assert ok
    return buf.tobytes()


class FakeController:
    """In-process stand-in for the sorting controller HTTP API."""

    def __init__(self):
        self.sensor = {"distance": 40.0, "objectDetected": False, "objectStable": False, "threshold": 15}
        self.bins = {
            "bin1": {"distance": 40.0, "warningSent": False},
            "bin2": {"distance": 40.0, "warningSent": False},
            "thresholds": {"empty": 59, "nearlyFull": 15, "full": 10},
        }
        self.commands: list[str] = []
        self.fail_commands = False
        self.requests: list[str] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/sensor", self.get_sensor)
        app.router.add_get("/bins", self.get_bins)
        app.router.add_get("/status", self.get_status)
        app.router.add_post("/control", self.post_control)
        return app

    async def get_sensor(self, request):
        self.requests.append("sensor")
        return web.json_response(self.sensor)

    async def get_bins(self, request):
        self.requests.append("bins")
        return web.json_response(self.bins)

    async def get_status(self, request):
        self.requests.append("status")
        return web.json_response({"status": "ok", "uptime": 12})

    async def post_control(self, request):
        data = await request.json()
        self.requests.append("control")
        if self.fail_commands:
            return web.Response(status=500, text="servo fault")
        self.commands.append(data["command"])
        return web.json_response({"status": "ok", "command": data["command"]})


class FakeCamera:
    """MJPEG camera that streams the same JPEG until stopped."""

    def __init__(self, interval: float = 0.02):
        self.interval = interval
        self.jpeg = jpeg_bytes()
        self.connections = 0
        self.fail_first = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/stream", self.stream)
        return app

    async def stream(self, request):
        self.connections += 1
        if self.fail_first:
            self.fail_first -= 1
            return web.Response(status=503, text="busy")
        response = web.StreamResponse()
        response.content_type = "multipart/x-mixed-replace; boundary=frame"
        await response.prepare(request)
        try:
            while True:
                await response.write(
                    b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + self.jpeg + b"\r\n"
                )
                await asyncio.sleep(self.interval)
        except (ConnectionResetError, ConnectionAbortedError):
            pass
        return response


class FakeInference:
    """Hosted detection API stand-in."""

    def __init__(self):
        self.predictions: list[dict] = []
        self.uploads: list[dict] = []
        self.status = 200
        self.delay = 0.0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/{model}/{version}", self.infer)
        return app

    async def infer(self, request):
        form = await request.post()
        upload = form["file"]
        self.uploads.append(
            {
                "model": request.match_info["model"],
                "version": request.match_info["version"],
                "query": dict(request.query),
                "filename": upload.filename,
                "size": len(upload.file.read()),
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.status != 200:
            return web.Response(status=self.status, text="model error")
        return web.json_response({"predictions": self.predictions, "image": {"width": 640, "height": 480}})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_log():
    return EventLog(clock=lambda: 1700000000.0)


@pytest.fixture
def params(tmp_path, monkeypatch):
    """Parameters with timings shrunk for loop-level tests."""
    monkeypatch.setattr("sorting_station.params.PARAMS_FILE", tmp_path / "params.json")
    return Parameters(
        camera_address="",
        controller_address="",
        mode="development",
        proxy_url="http://127.0.0.1:1/api/esp32",
        model_id="waste",
        model_version="3",
        api_key="test-key",
        request_timeout=2.0,
        stream_read_timeout=2.0,
        sensor_poll_interval=0.05,
        bin_poll_interval=0.05,
        status_poll_interval=0.05,
        detection_interval=0.05,
        sensor_cooldown=60.0,
        detection_cooldown=10.0,
        stream_timeout=30.0,
        grace_period=0.1,
        reconnect_delay=0.05,
        post_trigger_stop=0.05,
        clear_delay=0.01,
        frame_wait=1.0,
        frame_settle=0.0,
    )


@pytest.fixture
def fake_controller():
    return FakeController()


@pytest.fixture
def fake_camera():
    return FakeCamera()


@pytest.fixture
def fake_inference():
    return FakeInference()


@pytest.fixture
async def controller_server(aiohttp_server, fake_controller):
    return await aiohttp_server(fake_controller.app())


@pytest.fixture
async def camera_server(aiohttp_server, fake_camera):
    return await aiohttp_server(fake_camera.app())


@pytest.fixture
async def inference_server(aiohttp_server, fake_inference):
    return await aiohttp_server(fake_inference.app())


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01):
    """Poll predicate until true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)
