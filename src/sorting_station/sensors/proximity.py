"""
Proximity monitor - ultrasonic sensor gating for the camera stream.

Polls GET /sensor. An object arriving while SCANNING (and outside the
sensor cooldown) arms the station and asks for a stream. An object
leaving while streaming starts a grace timer; the stream only stops if
the object is still gone and no detection is running when it fires.
"""

from __future__ import annotations

import logging
import time

from sorting_station.errors import StationError
from sorting_station.perception.readings import SensorReading
from sorting_station.decision.state_machine import SessionState

logger = logging.getLogger(__name__)

GRACE = "grace_timer"


class ProximityMonitor:
    """
    Sensor poll and stream start/stop decisions.

    Usage:
        monitor = ProximityMonitor(api, machine, timers, log, params)
        monitor.on_arm = station.start_stream_from_sensor
        monitor.on_release = station.stop_stream_object_gone
        timers.every("sensor_poll", 1.0, monitor.poll, immediate=True)
    """

    def __init__(self, api, machine, timers, log, params, clock=time.monotonic):
        self.api = api
        self.machine = machine
        self.timers = timers
        self.log = log
        self.params = params
        self._clock = clock

        self.reading = SensorReading()  # Last good reading only
        self.last_stream_start: float | None = None
        self._sensor_ok = True

        # Callbacks (set by Station)
        self.on_arm = lambda: None
        self.on_release = lambda: None
        self.is_streaming = lambda: False
        self.is_busy = lambda: False  # Detection in flight

    def cooldown_remaining(self, now: float | None = None) -> float:
        """Seconds until the sensor may start another stream."""
        if self.last_stream_start is None:
            return 0.0
        now = self._clock() if now is None else now
        return max(0.0, self.params.sensor_cooldown - (now - self.last_stream_start))

    def cooldown_elapsed(self, now: float) -> bool:
        if self.last_stream_start is None:
            return True
        return now - self.last_stream_start > self.params.sensor_cooldown

    async def poll(self):
        """Fetch one reading. Failures keep the previous reading."""
        try:
            reading = await self.api.get_sensor()
        except StationError as e:
            logger.warning(f"Error reading ultrasonic sensor: {e}")
            if self._sensor_ok:
                self.log.add(f"Sensor unreachable: {e}", logging.WARNING, source="sensor")
                self._sensor_ok = False
            return

        if not self._sensor_ok:
            self.log.add("Sensor reachable again", source="sensor")
            self._sensor_ok = True
        self.reading = reading
        self.evaluate(reading)

    def evaluate(self, reading: SensorReading):
        """Apply one reading to the stream start/stop decisions."""
        now = self._clock()
        logger.debug(
            f"Sensor: distance={reading.distance:.1f}cm detected={reading.object_detected} "
            f"streaming={self.is_streaming()} cooldown={self.cooldown_remaining(now):.0f}s"
        )

        if (
            reading.object_detected
            and self.machine.can_arm
            and not self.is_streaming()
            and self.cooldown_elapsed(now)
        ):
            self.last_stream_start = now
            self.log.add("Object detected - Starting stream", source="sensor")
            if self.machine.request(SessionState.ARMED, f"object at {reading.distance:.1f}cm"):
                self.on_arm()
            return

        if reading.object_detected:
            if self.timers.cancel(GRACE):
                logger.info("Object returned - Cancelling stream stop")
            return

        if self.is_streaming() and not self.timers.is_active(GRACE):
            logger.info("Object disappeared - Will stop stream soon")
            self.timers.after(GRACE, self.params.grace_period, self.grace_expired)

    def grace_expired(self):
        if self.reading.object_detected or not self.is_streaming():
            return
        if self.is_busy():
            logger.info("Object gone but detection in progress - keeping stream")
            return
        logger.info("Object gone - Stopping stream")
        self.on_release()

    def cancel_grace(self):
        self.timers.cancel(GRACE)
