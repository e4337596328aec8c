import asyncio

import pytest

from sorting_station.control.timers import Timers
from sorting_station.decision.actuation import COUNTDOWN, ActuationGate
from sorting_station.decision.state_machine import SessionState, SessionStateMachine
from sorting_station.errors import HttpError
from sorting_station.perception.classifier import WasteClassifier
from sorting_station.perception.readings import Detection


def detection(label="Plastic", confidence=0.9):
    return Detection(label=label, confidence=confidence, x=0, y=0, width=10, height=10)


class FakeCommandAPI:
    def __init__(self):
        self.commands = []
        self.error = None

    async def send_command(self, command):
        if self.error:
            raise self.error
        self.commands.append(command)
        return {"status": "ok"}


@pytest.fixture
async def gate(params, event_log, clock):
    machine = SessionStateMachine()
    machine.start_monitoring()
    machine.request(SessionState.STREAMING, "manual")
    timers = Timers()
    g = ActuationGate(FakeCommandAPI(), WasteClassifier(), machine, timers, event_log, params, clock=clock)
    g.sorted = []
    g.ready = []
    g.on_sorting = lambda: g.sorted.append(True)
    g.on_ready = lambda: g.ready.append(True) or machine.request(SessionState.STREAMING, "cooldown finished")
    yield g
    await timers.cancel_all()


async def test_trigger_sends_category_command(gate, event_log):
    assert await gate.trigger(detection("Juice Packet", 0.87))
    assert gate.api.commands == ["plastic"]
    assert gate.machine.state is SessionState.COOLDOWN
    assert gate.is_active()
    assert gate.remaining_seconds == 10
    assert event_log.messages[0] == "Juice Packet -> PLASTIC (87%)"
    assert gate.timers.is_active(COUNTDOWN)


async def test_second_trigger_refused_within_cooldown(gate, clock):
    await gate.trigger(detection("Carrots"))
    clock.advance(9.9)
    assert not await gate.trigger(detection("Paper Cup"))
    assert gate.api.commands == ["biodegradable"]


async def test_commands_are_at_least_cooldown_apart(gate, clock, params):
    sent_at = []
    for _ in range(26):
        if await gate.trigger(detection()):
            sent_at.append(clock.now)
        clock.advance(1.0)
    assert len(sent_at) == 3
    gaps = [b - a for a, b in zip(sent_at, sent_at[1:])]
    assert all(gap >= params.detection_cooldown for gap in gaps)


async def test_countdown_finishes_window(gate, clock, event_log):
    await gate.trigger(detection())
    clock.advance(4)
    gate.countdown()
    assert gate.remaining_seconds == 6
    assert gate.ready == []

    clock.advance(6)
    gate.countdown()
    assert gate.remaining_seconds == 0
    assert not gate.is_active()
    assert gate.ready == [True]
    assert gate.machine.state is SessionState.STREAMING
    assert event_log.messages[0] == "Cooldown finished - ready"
    assert not gate.timers.is_active(COUNTDOWN)


async def test_failed_command_resets_cooldown(gate, event_log):
    gate.api.error = HttpError(500, "servo fault")
    assert not await gate.trigger(detection("Paper Cup"))
    assert not gate.is_active()
    assert gate.ready == [True]
    assert gate.machine.state is SessionState.STREAMING
    assert event_log.messages[0].startswith("Sort command recyclable failed")

    gate.api.error = None
    assert await gate.trigger(detection("Paper Cup"))
    assert gate.api.commands == ["recyclable"]


async def test_stream_stopped_after_command(gate, params, event_log):
    await gate.trigger(detection())
    await asyncio.sleep(params.post_trigger_stop + 0.05)
    assert gate.sorted == [True]
    assert "Stream stopped - Processing waste" in event_log.messages


async def test_detach_keeps_window_running(gate, clock):
    await gate.trigger(detection())
    gate.detach()
    assert gate.is_active()
    assert gate.remaining_seconds == 0
    assert not gate.timers.is_active(COUNTDOWN)
    clock.advance(4)
    assert gate.remaining() == 6
    clock.advance(6)
    assert not gate.is_active()
