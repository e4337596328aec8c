"""
Station - Coordinates all layers.

Owns every component and wires their callbacks:
1. ProximityMonitor arms the session and asks for a stream
2. StreamController keeps the latest camera frame
3. DetectionLoop classifies frames while STREAMING
4. ActuationGate sends sort commands, one per cooldown window
5. BinPoller and the status poll keep the operator view current

Everything runs on one asyncio loop; periodic work lives in Timers.
"""

from __future__ import annotations

import asyncio
import logging
import math
import signal
import time

from sorting_station.comm import ControllerAPI, InferenceClient, RemoteClient
from sorting_station.config import JANITOR_INTERVAL
from sorting_station.decision import ActuationGate, DetectionLoop, SessionState, SessionStateMachine
from sorting_station.errors import AlreadyStreaming, NoCameraConfigured, StationError
from sorting_station.event_log import EventLog
from sorting_station.params import Parameters
from sorting_station.perception import OverlayRenderer, WasteClassifier
from sorting_station.sensors import BinPoller, ProximityMonitor, StopReason, StreamController

from .timers import Timers

logger = logging.getLogger(__name__)

SENSOR_POLL = "sensor_poll"
STATUS_POLL = "status_poll"
RENDER = "overlay_render"
JANITOR = "overlay_janitor"


class Station:
    """
    Waste sorting station coordinator.

    Usage:
        station = Station()
        asyncio.run(station.run())

    or, embedded (tests, web):
        await station.start()
        station.start_monitoring()
        ...
        await station.close()
    """

    def __init__(self, params: Parameters | None = None, session=None, clock=time.monotonic):
        # Runtime parameters (shared, tunable via web)
        self.params = params or Parameters.load()
        self._clock = clock

        self.log = EventLog()
        self.timers = Timers()
        self.machine = SessionStateMachine()

        # Remote collaborators
        self.client = RemoteClient(self.params, session=session)
        self.api = ControllerAPI(self.client)
        self.inference = InferenceClient(self.client, self.params)

        # Perception
        self.classifier = WasteClassifier()
        self.overlay = OverlayRenderer(display_time=self.params.display_time, clock=clock)

        # Sensors
        self.stream = StreamController(self.params, self.timers, self.log, session=session, overlay=self.overlay, clock=clock)
        self.monitor = ProximityMonitor(self.api, self.machine, self.timers, self.log, self.params, clock=clock)
        self.bins = BinPoller(self.api, self.timers, self.log, self.params)

        # Decision
        self.gate = ActuationGate(self.api, self.classifier, self.machine, self.timers, self.log, self.params, clock=clock)
        self.detection = DetectionLoop(
            self.stream,
            self.inference,
            self.classifier,
            self.overlay,
            self.gate,
            self.machine,
            self.timers,
            self.log,
            self.params,
            clock=clock,
        )

        self._wire()

        # Controller liveness
        self.controller_online = False
        self.status_message = "Not checked"

        self._started = False
        self._stop_event: asyncio.Event | None = None

    def _wire(self):
        self.monitor.on_arm = lambda: self.start_stream("object detected")
        self.monitor.on_release = lambda: self.stop_stream(StopReason.OBJECT_GONE)
        self.monitor.is_streaming = lambda: self.stream.is_active
        self.monitor.is_busy = lambda: self.detection.detecting

        self.stream.on_stopped = self._on_stream_stopped

        self.gate.on_sorting = lambda: self.stop_stream(StopReason.SORTING)
        self.gate.on_ready = self.cooldown_finished

        self.machine.add_listener(self._on_transition)

    # ── Derived state ───────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self.machine.state

    @property
    def is_monitoring(self) -> bool:
        return self.machine.monitoring

    @property
    def is_streaming(self) -> bool:
        return self.stream.is_active

    @property
    def is_cooldown(self) -> bool:
        return self.machine.is_cooldown

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self):
        """Open the HTTP session and start the always-on loops."""
        if self._started:
            return
        logger.info("Station starting...")
        await self.client.start()
        self.stream.http = self.client.session

        self.timers.every(STATUS_POLL, self.params.status_poll_interval, self.check_controller, immediate=True)
        self.timers.every(RENDER, 1.0 / max(1, self.params.render_hz), self.overlay.render)
        self.timers.every(JANITOR, JANITOR_INTERVAL, self.overlay.prune)
        self._started = True

        if not self.inference.is_configured():
            self.log.add(
                f"Inference API not configured (missing: {', '.join(self.inference.missing_settings())})",
                logging.WARNING,
            )
        if not self.params.camera_address:
            self.log.add("No camera IP configured", logging.WARNING)

    async def close(self):
        """Cancel every timer and close the HTTP session."""
        logger.info("Cleaning up...")
        if self.stream.is_active:
            self.stream.stop(StopReason.SHUTDOWN)
        await self.timers.cancel_all()
        await self.client.close()
        self._started = False
        logger.info("Cleanup complete")

    async def run(self, web: bool = False, host: str | None = None, port: int | None = None):
        """Run until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._shutdown)

        runner = None
        try:
            await self.start()
            self.start_monitoring()

            if web:
                from sorting_station.web.server import run_server

                kwargs = {k: v for k, v in (("host", host), ("port", port)) if v is not None}
                runner = await run_server(station=self, **kwargs)

            logger.info("Press Ctrl+C to stop")
            await self._stop_event.wait()

        except Exception as e:
            logger.error(f"Station error: {e}")
            raise
        finally:
            if runner is not None:
                await runner.cleanup()
            await self.close()

    def _shutdown(self):
        """Handle shutdown signal."""
        logger.info("Shutdown requested")
        if self._stop_event is not None:
            self._stop_event.set()

    # ── Monitoring ──────────────────────────────────────────────

    def start_monitoring(self) -> bool:
        if not self.machine.start_monitoring():
            return False
        self.log.add("Monitoring started")
        self.timers.every(SENSOR_POLL, self.params.sensor_poll_interval, self.monitor.poll, immediate=True)
        self.bins.start()
        return True

    def stop_monitoring(self) -> bool:
        if not self.machine.stop_monitoring():
            return False
        self.timers.cancel(SENSOR_POLL)
        self.bins.stop()
        self.monitor.cancel_grace()
        self.gate.detach()
        self.detection.stop()
        self.stream.stop(StopReason.MONITORING_OFF)
        self.log.add("Monitoring stopped")
        return True

    # ── Stream ──────────────────────────────────────────────────

    def start_stream(self, reason: str = "manual") -> bool:
        """
        Start a stream session from the sensor or the operator.

        Returns:
            True if a new session started.
        """
        if self.machine.is_cooldown:
            logger.info("Cannot start stream during cooldown")
            self.log.add("Cannot start stream during cooldown", logging.WARNING)
            return False

        try:
            self.stream.start()
        except AlreadyStreaming:
            logger.debug("Stream already active")
            return False
        except NoCameraConfigured:
            self.log.add("No camera IP configured", logging.WARNING)
            if self.machine.state is SessionState.ARMED:
                self.machine.settle("no camera")
            return False

        self.machine.request(SessionState.STREAMING, reason)
        return True

    def stop_stream(self, reason: StopReason = StopReason.MANUAL) -> bool:
        return self.stream.stop(reason)

    def _on_stream_stopped(self, reason: StopReason):
        self.monitor.cancel_grace()
        self.detection.stop()
        if self.machine.state in (SessionState.STREAMING, SessionState.ARMED):
            self.machine.settle(f"stream stopped: {reason.value}")

    def _on_transition(self, old: SessionState, new: SessionState, reason: str):
        if new is SessionState.STREAMING:
            self.detection.start()
        elif old is SessionState.STREAMING:
            self.detection.stop()

    def cooldown_finished(self):
        if not self.machine.is_cooldown:
            return
        target = SessionState.STREAMING if self.stream.is_active else self.machine.resting_state
        self.machine.request(target, "cooldown finished")

    # ── Controller ──────────────────────────────────────────────

    async def check_controller(self):
        """Liveness poll. Failures only flip the online flag."""
        try:
            await self.api.get_status()
        except StationError as e:
            if self.controller_online:
                self.log.add(f"Controller offline: {e}", logging.WARNING)
            self.controller_online = False
            self.status_message = f"Connection error: {e}"
            return

        if not self.controller_online:
            self.log.add("Controller online")
        self.controller_online = True
        self.status_message = "Connected"

    async def send_manual_command(self, command: str):
        """
        Send an operator command (sort category, stop, force/reset detection).

        Raises:
            ValueError: Unknown command.
            StationError: Delivery failed (also recorded in the event log).
        """
        self.log.add(f"Manual command: {command}")
        try:
            return await self.api.send_command(command)
        except StationError as e:
            self.log.add(f"Command {command} failed: {e}", logging.ERROR)
            raise

    # ── Operator toggles ────────────────────────────────────────

    def set_detection_enabled(self, enabled: bool):
        self.detection.enabled = enabled
        self.log.add(f"Detection {'enabled' if enabled else 'disabled'}")

    def clear_detections(self):
        self.overlay.clear()
        self.log.add("Detections cleared")

    def status(self) -> dict:
        """Snapshot for the operator API."""
        now = self._clock()
        return {
            "state": self.machine.state.name,
            "monitoring": self.is_monitoring,
            "streaming": self.is_streaming,
            "stream": self.stream.session.to_dict(),
            "stream_loaded": self.stream.is_loaded,
            "fps": self.stream.fps,
            "frames_loaded": self.stream.frames_loaded,
            "sensor": self.monitor.reading.to_dict(),
            "sensor_cooldown_remaining": round(self.monitor.cooldown_remaining(now), 1),
            "cooldown": {
                "active": self.gate.is_active(now),
                "remaining": math.ceil(self.gate.remaining(now)),
            },
            "detection": {
                "enabled": self.detection.enabled,
                "detecting": self.detection.detecting,
                "active": [d.to_dict(now) for d in self.overlay.active(now)],
            },
            "stats": self.detection.stats.to_dict(),
            "controller": {
                "online": self.controller_online,
                "message": self.status_message,
                "transports": [t.name for t in self.client.transports()],
            },
            "inference": {
                "configured": self.inference.is_configured(),
                "missing": self.inference.missing_settings(),
            },
        }
