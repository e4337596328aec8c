"""
Actuation gate - one sort command per cooldown window.

trigger() classifies the top detection, opens the cooldown window,
sends the sort command and schedules a stream stop so the sorter can
take the object. A failed command closes the window again so the next
qualifying detection can retry.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

from sorting_station.config import COUNTDOWN_INTERVAL
from sorting_station.errors import StationError
from sorting_station.perception.readings import Detection

from .state_machine import SessionState

logger = logging.getLogger(__name__)

COUNTDOWN = "cooldown_countdown"
POST_TRIGGER_STOP = "post_trigger_stop"


@dataclass(frozen=True)
class CooldownWindow:
    """Quiet period after a sort command."""

    active: bool = False
    started_at: float = 0.0
    duration: float = 0.0

    def remaining(self, now: float) -> float:
        if not self.active:
            return 0.0
        return max(0.0, self.duration - (now - self.started_at))


class ActuationGate:
    """
    Cooldown-gated sort commands.

    Usage:
        gate = ActuationGate(api, classifier, machine, timers, log, params)
        gate.on_sorting = lambda: station.stop_stream(StopReason.SORTING)
        gate.on_ready = station.cooldown_finished
        await gate.trigger(detection)
    """

    def __init__(self, api, classifier, machine, timers, log, params, clock=time.monotonic):
        self.api = api
        self.classifier = classifier
        self.machine = machine
        self.timers = timers
        self.log = log
        self.params = params
        self._clock = clock

        self.window = CooldownWindow()
        self.last_trigger: float | None = None
        self.remaining_seconds = 0
        self.commands_sent = 0

        # Callbacks (set by Station)
        self.on_sorting = lambda: None
        self.on_ready = lambda: None

    def is_active(self, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        return self.window.remaining(now) > 0

    def remaining(self, now: float | None = None) -> float:
        now = self._clock() if now is None else now
        return self.window.remaining(now)

    def can_trigger(self, now: float) -> bool:
        if self.is_active(now):
            return False
        if self.last_trigger is not None and now - self.last_trigger < self.params.detection_cooldown:
            return False
        return True

    async def trigger(self, detection: Detection) -> bool:
        """
        Send one sort command for a qualifying detection.

        Returns:
            True if the command was delivered.
        """
        now = self._clock()
        if not self.can_trigger(now):
            left = max(self.remaining(now), self.params.detection_cooldown - (now - (self.last_trigger or now)))
            logger.info(f"In cooldown, skipping {detection.label}. {left:.1f}s remaining")
            return False

        category = self.classifier.classify(detection.label)
        percent = f"{detection.confidence * 100:.0f}%"
        logger.info(f"Classification: {category.value.upper()} | Object: {detection.label} ({percent})")

        # Window opens before the command goes out so nothing can slip in meanwhile
        self.last_trigger = now
        self.window = CooldownWindow(active=True, started_at=now, duration=self.params.detection_cooldown)
        self.remaining_seconds = math.ceil(self.params.detection_cooldown)
        self.machine.request(SessionState.COOLDOWN, f"{detection.label} -> {category.value}")
        self.timers.every(COUNTDOWN, COUNTDOWN_INTERVAL, self.countdown)

        try:
            await self.api.send_command(category.command)
        except StationError as e:
            logger.error(f"Error sending detection to controller: {e}")
            self.log.add(f"Sort command {category.command} failed: {e}", logging.ERROR, source="actuation")
            self.reset()
            return False

        self.commands_sent += 1
        self.log.add(f"{detection.label} -> {category.value.upper()} ({percent})", source="actuation")
        self.timers.after(POST_TRIGGER_STOP, self.params.post_trigger_stop, self._sorting)
        return True

    def countdown(self):
        """1 Hz operator countdown; closes the window when it reaches zero."""
        remaining = self.remaining()
        self.remaining_seconds = math.ceil(remaining)
        if remaining <= 0:
            self._finish()

    def reset(self):
        """Cancel the window (e.g. after a failed command) so the next detection may retry."""
        self.last_trigger = None
        self._finish(announce=False)

    def detach(self):
        """Drop pending timers; the window itself still expires on time."""
        self.timers.cancel(COUNTDOWN, POST_TRIGGER_STOP)
        self.remaining_seconds = 0

    def _finish(self, announce: bool = True):
        self.window = CooldownWindow()
        self.remaining_seconds = 0
        self.timers.cancel(COUNTDOWN, POST_TRIGGER_STOP)
        if announce:
            self.log.add("Cooldown finished - ready", source="actuation")
        self.on_ready()

    def _sorting(self):
        self.log.add("Stream stopped - Processing waste", source="actuation")
        self.on_sorting()
