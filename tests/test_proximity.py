import asyncio

import pytest

from sorting_station.control.timers import Timers
from sorting_station.decision.state_machine import SessionState, SessionStateMachine
from sorting_station.errors import NetworkError
from sorting_station.perception.readings import SensorReading
from sorting_station.sensors.proximity import GRACE, ProximityMonitor

PRESENT = SensorReading(distance=8.0, object_detected=True)
ABSENT = SensorReading(distance=40.0, object_detected=False)


class FakeSensorAPI:
    def __init__(self):
        self.reading = ABSENT
        self.error = None

    async def get_sensor(self):
        if self.error:
            raise self.error
        return self.reading


class Harness:
    """Monitor plus a minimal stand-in for the station's stream handling."""

    def __init__(self, params, event_log, clock):
        self.api = FakeSensorAPI()
        self.machine = SessionStateMachine()
        self.timers = Timers()
        self.monitor = ProximityMonitor(self.api, self.machine, self.timers, event_log, params, clock=clock)
        self.streaming = False
        self.busy = False
        self.released = 0
        self.monitor.on_arm = self.arm
        self.monitor.on_release = self.release
        self.monitor.is_streaming = lambda: self.streaming
        self.monitor.is_busy = lambda: self.busy
        self.machine.start_monitoring()

    def arm(self):
        self.streaming = True
        self.machine.request(SessionState.STREAMING, "stream up")

    def release(self):
        self.released += 1
        self.streaming = False
        self.machine.settle("object gone")


@pytest.fixture
async def harness(params, event_log, clock):
    h = Harness(params, event_log, clock)
    yield h
    await h.timers.cancel_all()


async def test_object_arms_and_starts_stream(harness, event_log):
    harness.monitor.evaluate(PRESENT)
    assert harness.streaming
    assert harness.machine.state is SessionState.STREAMING
    assert event_log.messages[0] == "Object detected - Starting stream"


async def test_sensor_cooldown_blocks_second_start(harness, clock, params):
    harness.monitor.evaluate(PRESENT)
    harness.release()
    assert harness.machine.state is SessionState.SCANNING

    clock.advance(params.sensor_cooldown)
    harness.monitor.evaluate(PRESENT)
    assert not harness.streaming  # exactly 60s is not enough

    clock.advance(0.001)
    harness.monitor.evaluate(PRESENT)
    assert harness.streaming


async def test_no_arming_during_cooldown_state(harness, clock, params):
    harness.machine.request(SessionState.STREAMING, "manual")
    harness.machine.request(SessionState.COOLDOWN, "sorted")
    harness.monitor.evaluate(PRESENT)
    assert harness.machine.state is SessionState.COOLDOWN
    assert harness.monitor.last_stream_start is None


async def test_grace_period_stops_stream(harness, params):
    harness.monitor.evaluate(PRESENT)
    harness.monitor.reading = ABSENT
    harness.monitor.evaluate(ABSENT)
    assert harness.timers.is_active(GRACE)
    await asyncio.sleep(params.grace_period + 0.05)
    assert harness.released == 1
    assert harness.machine.state is SessionState.SCANNING


async def test_returning_object_cancels_grace(harness, params):
    harness.monitor.evaluate(PRESENT)
    harness.monitor.evaluate(ABSENT)
    harness.monitor.reading = PRESENT
    harness.monitor.evaluate(PRESENT)
    assert not harness.timers.is_active(GRACE)
    await asyncio.sleep(params.grace_period + 0.05)
    assert harness.released == 0
    assert harness.streaming


async def test_grace_kept_while_detection_busy(harness, params):
    harness.monitor.evaluate(PRESENT)
    harness.monitor.reading = ABSENT
    harness.busy = True
    harness.monitor.evaluate(ABSENT)
    await asyncio.sleep(params.grace_period + 0.05)
    assert harness.released == 0
    assert harness.streaming


async def test_grace_not_restarted_while_pending(harness):
    harness.monitor.evaluate(PRESENT)
    harness.monitor.evaluate(ABSENT)
    first = harness.timers._tasks[GRACE]
    harness.monitor.evaluate(ABSENT)
    assert harness.timers._tasks[GRACE] is first


async def test_poll_failure_keeps_last_reading(harness, event_log):
    harness.api.reading = PRESENT
    await harness.monitor.poll()
    assert harness.monitor.reading == PRESENT

    harness.api.error = NetworkError("unreachable")
    await harness.monitor.poll()
    await harness.monitor.poll()
    assert harness.monitor.reading == PRESENT
    assert event_log.messages.count("Sensor unreachable: unreachable") == 1

    harness.api.error = None
    await harness.monitor.poll()
    assert event_log.messages[0] == "Sensor reachable again"
