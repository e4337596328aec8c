"""
Overlay renderer - detection boxes painted over the live frame.

The render set is a tuple of ActiveDetection replaced wholesale:
the detection loop appends, the janitor prunes expired entries, and
the repaint loop only reads. The canvas is a BGRA image the size of
the source frame; compose() alpha-blends it over a frame.
"""

from __future__ import annotations

import logging
import time

import cv2
import numpy as np

from sorting_station.config import (
    BOX_THICKNESS,
    DISPLAY_TIME,
    FADE_TIME,
    LABEL_FONT_SCALE,
    LABEL_HEIGHT,
    LABEL_TEXT_COLOR,
)

from .readings import ActiveDetection

logger = logging.getLogger(__name__)


class OverlayRenderer:
    """
    Repaints active detections with a fade-out in their last second.

    Usage:
        overlay = OverlayRenderer()
        overlay.resize(640, 480)
        overlay.add([active_detection])
        overlay.render()
        jpeg = overlay.compose_jpeg(frame)
    """

    def __init__(self, display_time: float = DISPLAY_TIME, clock=time.monotonic):
        self.display_time = display_time
        self._clock = clock
        self._detections: tuple[ActiveDetection, ...] = ()
        self._canvas: np.ndarray | None = None
        self.frames_rendered = 0

    @property
    def detections(self) -> tuple[ActiveDetection, ...]:
        """Raw render set, including entries the janitor has not pruned yet."""
        return self._detections

    @property
    def canvas(self) -> np.ndarray | None:
        return self._canvas

    def active(self, now: float | None = None) -> list[ActiveDetection]:
        """Detections still within their display time."""
        now = self._clock() if now is None else now
        return [d for d in self._detections if not d.is_expired(now, self.display_time)]

    def add(self, detections: list[ActiveDetection]):
        """Append new detections, dropping expired ones in the same swap."""
        now = self._clock()
        self._detections = tuple(self.active(now)) + tuple(detections)

    def prune(self, now: float | None = None) -> int:
        """Janitor pass. Returns how many entries were removed."""
        kept = self.active(now)
        removed = len(self._detections) - len(kept)
        if removed:
            self._detections = tuple(kept)
            logger.debug(f"Pruned {removed} expired detections")
        return removed

    def clear(self):
        """Drop every detection and blank the canvas."""
        self._detections = ()
        if self._canvas is not None:
            self._canvas[:] = 0

    def resize(self, width: int, height: int):
        """Match the canvas to the source frame size."""
        if width <= 0 or height <= 0:
            return
        if self._canvas is None or self._canvas.shape[:2] != (height, width):
            self._canvas = np.zeros((height, width, 4), dtype=np.uint8)

    def opacity(self, detection: ActiveDetection, now: float) -> float:
        """Linear fade over the last FADE_TIME seconds of the display time."""
        remaining = self.display_time - detection.age(now)
        return max(0.0, min(1.0, remaining / FADE_TIME))

    def render(self, now: float | None = None) -> np.ndarray | None:
        """Clear the canvas and draw every active detection."""
        if self._canvas is None:
            return None
        now = self._clock() if now is None else now
        canvas = self._canvas
        canvas[:] = 0

        for detection in self._detections:
            alpha = self.opacity(detection, now)
            if alpha <= 0:
                continue
            self._draw(canvas, detection, alpha)

        self.frames_rendered += 1
        return canvas

    def compose(self, frame: np.ndarray) -> np.ndarray:
        """Blend the canvas over a BGR frame."""
        canvas = self._canvas
        if canvas is None or canvas.shape[:2] != frame.shape[:2]:
            return frame.copy()
        alpha = canvas[:, :, 3:4].astype(np.float32) / 255.0
        blended = frame.astype(np.float32) * (1.0 - alpha) + canvas[:, :, :3].astype(np.float32) * alpha
        return blended.astype(np.uint8)

    def compose_jpeg(self, frame: np.ndarray, quality: int = 80) -> bytes | None:
        ret, jpeg = cv2.imencode(".jpg", self.compose(frame), [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ret:
            return None
        return jpeg.tobytes()

    def _draw(self, canvas: np.ndarray, detection: ActiveDetection, alpha: float):
        b, g, r = detection.color
        a = int(round(alpha * 255))
        color = (b, g, r, a)
        x, y, w, h = detection.detection.box

        cv2.rectangle(canvas, (x, y), (x + w, y + h), color, BOX_THICKNESS)

        text = f"{detection.display_name} {detection.detection.confidence * 100:.0f}%"
        (text_w, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, LABEL_FONT_SCALE, 1)
        cv2.rectangle(canvas, (x, y - LABEL_HEIGHT), (x + text_w + 8, y), color, -1)
        cv2.putText(
            canvas,
            text,
            (x + 4, y - 6),
            cv2.FONT_HERSHEY_SIMPLEX,
            LABEL_FONT_SCALE,
            LABEL_TEXT_COLOR + (a,),
            1,
        )
