"""
Detection loop - samples the live frame and classifies it.

Every detection_interval while STREAMING (detection enabled, no cooldown)
a tick checks the frame and, if ready, starts one inference call. The
"detecting" flag is set synchronously in the tick, so a tick that fires
while a call is outstanding is dropped rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass

from sorting_station.errors import StationError
from sorting_station.perception.classifier import WasteCategory
from sorting_station.perception.readings import ActiveDetection, Detection

from .state_machine import SessionState

logger = logging.getLogger(__name__)

TICK = "detection_tick"
CALL = "detection_call"


@dataclass
class WasteStats:
    """Cumulative per-category detection counts."""

    biodegradable: int = 0
    non_biodegradable: int = 0
    recyclable: int = 0

    def record(self, category: WasteCategory):
        key = category.stats_key
        setattr(self, key, getattr(self, key) + 1)

    @property
    def total(self) -> int:
        return self.biodegradable + self.non_biodegradable + self.recyclable

    def to_dict(self) -> dict:
        return asdict(self)


class DetectionLoop:
    """
    Frame sampling, inference and hand-off to the actuation gate.

    Usage:
        loop = DetectionLoop(stream, inference, classifier, overlay, gate, machine, timers, log, params)
        loop.start()    # while STREAMING
        loop.stop()
    """

    def __init__(self, stream, inference, classifier, overlay, gate, machine, timers, log, params, clock=time.monotonic):
        self.stream = stream
        self.inference = inference
        self.classifier = classifier
        self.overlay = overlay
        self.gate = gate
        self.machine = machine
        self.timers = timers
        self.log = log
        self.params = params
        self._clock = clock

        self.enabled = True
        self.stats = WasteStats()
        self.calls = 0
        self.dropped_ticks = 0
        self._detecting = False

    @property
    def detecting(self) -> bool:
        return self._detecting

    @property
    def should_run(self) -> bool:
        return (
            self.enabled
            and self.machine.state is SessionState.STREAMING
            and not self.gate.is_active()
        )

    def start(self):
        if not self.timers.is_active(TICK):
            logger.info("Starting detection interval")
            self.timers.every(TICK, self.params.detection_interval, self.tick)

    def stop(self):
        if self.timers.cancel(TICK):
            logger.info("Stopping detection interval")

    def skip_reason(self) -> str | None:
        """Why this tick cannot run, or None if it can."""
        if not self.should_run:
            return "not streaming or in cooldown"
        if self.stream.source_url is None:
            return "no stream source"
        if self._detecting:
            return "detection in progress"
        if not self.stream.is_loaded:
            return "frame not loaded"
        return None

    def tick(self):
        reason = self.skip_reason()
        if reason is not None:
            if reason == "detection in progress":
                self.dropped_ticks += 1
            logger.debug(f"Skipping detection - {reason}")
            return
        self._detecting = True
        self.calls += 1
        self.timers.spawn(CALL, self._detect(self.stream.session))

    async def _detect(self, session):
        try:
            if not self.stream.is_loaded:
                logger.info("Waiting for frame to load...")
                if not await self.stream.wait_for_frame(self.params.frame_wait):
                    logger.info("Frame failed to load within timeout")
                    return
            await asyncio.sleep(self.params.frame_settle)

            frame = self.stream.frame
            if not self.stream.is_loaded or frame is None:
                logger.info("Frame has zero dimensions")
                return

            logger.debug(f"Starting detection on {frame.shape[1]}x{frame.shape[0]} frame")
            detections = await self.inference.detect(frame)

            if self.stream.session is not session:
                logger.info(f"Stream ended during detection, dropping {len(detections)} results")
                return
            await self.handle(detections)

        except asyncio.CancelledError:
            raise
        except StationError as e:
            logger.error(f"Detection error: {e}")
            self.log.add(f"AI Detection failed: {e}", logging.ERROR, source="detection")
        except Exception as e:
            logger.error(f"Detection error: {e}", exc_info=True)
            self.log.add("AI Detection failed", logging.ERROR, source="detection")
        finally:
            self._detecting = False

    async def handle(self, detections: list[Detection]) -> list[ActiveDetection]:
        """Render, count and log accepted detections; forward the best qualifying one."""
        accepted = [d for d in detections if d.confidence >= self.params.confidence_floor]
        dropped = len(detections) - len(accepted)
        if dropped:
            logger.debug(f"Filtered out {dropped} predictions below {self.params.confidence_floor:.0%}")
        if not accepted:
            logger.debug("No objects detected in current frame")
            return []

        now = self._clock()
        active = []
        for detection in accepted:
            category = self.classifier.classify(detection.label)
            if not self.classifier.is_known(detection.label):
                logger.debug(f"Label {detection.label!r} not in table, classified by keyword as {category.value}")
            active.append(
                ActiveDetection(
                    detection=detection,
                    category=category,
                    timestamp=now,
                    display_name=self.classifier.display_name(detection.label),
                )
            )
            self.stats.record(category)
            self.log.add(
                f"{detection.label} -> {category.value.upper()} ({detection.confidence * 100:.0f}%)",
                source="detection",
            )
        self.overlay.add(active)

        qualifying = [d for d in accepted if d.confidence >= self.params.actuation_threshold]
        logger.info(f"Detected {len(accepted)} objects ({len(qualifying)} high confidence)")
        if qualifying:
            top = max(qualifying, key=lambda d: d.confidence)
            await self.gate.trigger(top)
        return active
