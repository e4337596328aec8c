import asyncio
import logging

import numpy as np
import pytest

from sorting_station.control.timers import Timers
from sorting_station.decision.detection import DetectionLoop
from sorting_station.decision.state_machine import SessionState, SessionStateMachine
from sorting_station.errors import HttpError
from sorting_station.perception.classifier import WasteClassifier
from sorting_station.perception.overlay import OverlayRenderer
from sorting_station.perception.readings import Detection
from sorting_station.sensors.stream import StreamSession

from conftest import wait_until


def detection(label, confidence):
    return Detection(label=label, confidence=confidence, x=5, y=25, width=20, height=10)


class FakeStream:
    def __init__(self):
        self.session = StreamSession(active=True)
        self.source_url = "http://camera/stream?t=1&r=abcdef"
        self.frame = np.zeros((48, 64, 3), dtype=np.uint8)

    @property
    def is_loaded(self):
        return self.source_url is not None and self.frame is not None

    async def wait_for_frame(self, timeout):
        return self.is_loaded


class FakeInference:
    def __init__(self):
        self.result = []
        self.error = None
        self.calls = 0
        self.release = None

    async def detect(self, frame):
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        if self.error:
            raise self.error
        return list(self.result)


class FakeGate:
    def __init__(self):
        self.active = False
        self.triggered = []

    def is_active(self, now=None):
        return self.active

    async def trigger(self, d):
        self.triggered.append(d)
        return True


@pytest.fixture
async def loop(params, event_log, clock):
    machine = SessionStateMachine()
    machine.request(SessionState.STREAMING, "manual")
    timers = Timers()
    overlay = OverlayRenderer(clock=clock)
    dl = DetectionLoop(
        FakeStream(),
        FakeInference(),
        WasteClassifier(),
        overlay,
        FakeGate(),
        machine,
        timers,
        event_log,
        params,
        clock=clock,
    )
    yield dl
    await timers.cancel_all()


async def test_thresholds(loop):
    active = await loop.handle(
        [
            detection("Rice", 0.15),
            detection("Carrots", 0.4),
            detection("Plastic", 0.65),
            detection("Paper Cup", 0.8),
        ]
    )
    # Floor drops 0.15, everything else is drawn and counted
    assert [a.detection.label for a in active] == ["Carrots", "Plastic", "Paper Cup"]
    assert len(loop.overlay.detections) == 3
    assert loop.stats.to_dict() == {"biodegradable": 1, "non_biodegradable": 1, "recyclable": 1}
    # Only the best qualifying detection is forwarded
    assert [d.label for d in loop.gate.triggered] == ["Paper Cup"]


async def test_low_confidence_never_forwarded(loop):
    await loop.handle([detection("Plastic", 0.59)])
    assert loop.gate.triggered == []
    assert loop.stats.non_biodegradable == 1


async def test_display_names(loop):
    active = await loop.handle([detection("Juice Packet", 0.7)])
    assert active[0].display_name == "NON-BIO: Juice Packet"


async def test_keyword_fallback_is_logged(loop, caplog):
    caplog.set_level(logging.DEBUG, logger="sorting_station.decision.detection")
    active = await loop.handle([detection("Soda Can", 0.7), detection("Carrots", 0.7)])
    assert [d.display_name for d in active] == ["RECYCLE: Soda Can", "BIO: Carrots"]
    assert "'Soda Can' not in table, classified by keyword as recyclable" in caplog.text
    assert "'Carrots' not in table" not in caplog.text


async def test_tick_runs_one_detection(loop):
    loop.inference.result = [detection("Plastic", 0.9)]
    loop.tick()
    assert loop.detecting
    await wait_until(lambda: not loop.detecting)
    assert loop.inference.calls == 1
    assert len(loop.gate.triggered) == 1
    assert "Plastic -> PLASTIC (90%)" in loop.log.messages


async def test_ticks_dropped_while_in_flight(loop):
    loop.inference.release = asyncio.Event()
    loop.tick()
    loop.tick()
    loop.tick()
    assert loop.dropped_ticks == 2
    loop.inference.release.set()
    await wait_until(lambda: not loop.detecting)
    assert loop.inference.calls == 1


@pytest.mark.parametrize(
    "setup",
    [
        lambda dl: setattr(dl, "enabled", False),
        lambda dl: dl.machine.request(SessionState.IDLE, "stop"),
        lambda dl: setattr(dl.gate, "active", True),
        lambda dl: setattr(dl.stream, "source_url", None),
        lambda dl: setattr(dl.stream, "frame", None),
    ],
)
async def test_tick_skipped(loop, setup, caplog):
    setup(loop)
    with caplog.at_level(logging.DEBUG, logger="sorting_station.decision.detection"):
        loop.tick()
    await asyncio.sleep(0.01)
    assert loop.inference.calls == 0
    assert not loop.detecting
    assert "Skipping detection" in caplog.text


async def test_results_dropped_when_stream_ended(loop):
    loop.inference.result = [detection("Plastic", 0.9)]
    loop.inference.release = asyncio.Event()
    loop.tick()
    await asyncio.sleep(0.01)
    loop.stream.session = StreamSession()
    loop.inference.release.set()
    await wait_until(lambda: not loop.detecting)
    assert loop.gate.triggered == []
    assert loop.overlay.detections == ()


async def test_inference_error_logged(loop):
    loop.inference.error = HttpError(500, "model error")
    loop.tick()
    await wait_until(lambda: not loop.detecting)
    assert loop.log.messages[0] == "AI Detection failed: HTTP 500: model error"
    assert loop.log.entries[0].level == logging.ERROR


async def test_start_stop(loop):
    loop.start()
    assert loop.timers.is_active("detection_tick")
    loop.stop()
    assert not loop.timers.is_active("detection_tick")
