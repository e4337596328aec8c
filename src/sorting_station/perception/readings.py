"""
Readings - data produced by the controller and the inference API.

SensorReading and BinSnapshot are parsed from controller JSON, Detection
from inference predictions. ActiveDetection is a Detection on screen.
All are immutable: consumers replace them wholesale.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from sorting_station.config import (
    BIN_EMPTY_DISTANCE,
    BIN_FULL_DISTANCE,
    BIN_NEARLY_FULL_DISTANCE,
)
from sorting_station.errors import DecodeError

from .classifier import WasteCategory


def _number(data: dict, key: str, default: float | None = None) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"Expected number for {key!r}, got {value!r}")
    if not math.isfinite(value):
        raise DecodeError(f"Non-finite value for {key!r}")
    return float(value)


def _object(data, name: str) -> dict:
    if not isinstance(data, dict):
        raise DecodeError(f"Expected JSON object for {name}, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class SensorReading:
    """Latest ultrasonic proximity reading."""

    distance: float = -1.0  # cm, -1 when the echo was invalid
    object_detected: bool = False
    object_stable: bool = False
    threshold: float = 15.0  # cm

    @property
    def is_valid(self) -> bool:
        return self.distance >= 0

    @classmethod
    def from_json(cls, data) -> SensorReading:
        data = _object(data, "sensor reading")
        return cls(
            distance=_number(data, "distance", -1.0),
            object_detected=bool(data.get("objectDetected", False)),
            object_stable=bool(data.get("objectStable", False)),
            threshold=_number(data, "threshold", 15.0),
        )

    def to_dict(self) -> dict:
        return {
            "distance": self.distance,
            "objectDetected": self.object_detected,
            "objectStable": self.object_stable,
            "threshold": self.threshold,
        }


# ── Bins ────────────────────────────────────────────────────────


class BinState(Enum):
    """Bin capacity state. Smaller distance means fuller."""

    UNKNOWN = "No reading"
    EMPTY = "Empty"
    NORMAL = "Normal"
    NEARLY_FULL = "Nearly Full"
    FULL = "Full"


@dataclass(frozen=True)
class Thresholds:
    """Distance boundaries in cm. empty > nearly_full > full."""

    empty: float = BIN_EMPTY_DISTANCE
    nearly_full: float = BIN_NEARLY_FULL_DISTANCE
    full: float = BIN_FULL_DISTANCE

    def __post_init__(self):
        if not self.empty > self.nearly_full > self.full:
            raise ValueError(
                f"Thresholds must satisfy empty > nearly_full > full, "
                f"got {self.empty}/{self.nearly_full}/{self.full}"
            )

    @classmethod
    def from_json(cls, data) -> Thresholds:
        data = _object(data, "thresholds")
        try:
            return cls(
                empty=_number(data, "empty", BIN_EMPTY_DISTANCE),
                nearly_full=_number(data, "nearlyFull", BIN_NEARLY_FULL_DISTANCE),
                full=_number(data, "full", BIN_FULL_DISTANCE),
            )
        except ValueError as e:
            raise DecodeError(str(e)) from e

    def to_dict(self) -> dict:
        return {"empty": self.empty, "nearlyFull": self.nearly_full, "full": self.full}


def bin_state(distance: float, thresholds: Thresholds) -> BinState:
    """Capacity state for a measured distance. Fuller never reads as emptier."""
    if distance > thresholds.empty:
        return BinState.EMPTY
    if distance > thresholds.nearly_full:
        return BinState.NORMAL
    if distance > thresholds.full:
        return BinState.NEARLY_FULL
    return BinState.FULL


def fill_percentage(distance: float, thresholds: Thresholds) -> int:
    """0 at or beyond the empty distance, 100 at or below the full distance."""
    if distance >= thresholds.empty:
        return 0
    if distance <= thresholds.full:
        return 100
    span = thresholds.empty - thresholds.full
    return round(100 * (thresholds.empty - distance) / span)


@dataclass(frozen=True)
class BinStatus:
    """One bin. State and fill are derived from distance, never set directly."""

    distance: float | None = None  # cm, None until the first poll
    warning_sent: bool = False
    thresholds: Thresholds = field(default_factory=Thresholds, repr=False)

    @property
    def state(self) -> BinState:
        if self.distance is None:
            return BinState.UNKNOWN
        return bin_state(self.distance, self.thresholds)

    @property
    def fill_percentage(self) -> int:
        if self.distance is None:
            return 0
        return fill_percentage(self.distance, self.thresholds)

    @property
    def is_full(self) -> bool:
        return self.state is BinState.FULL

    def to_dict(self) -> dict:
        return {
            "distance": self.distance,
            "state": self.state.value,
            "fillPercentage": self.fill_percentage,
            "warningSent": self.warning_sent,
        }


@dataclass(frozen=True)
class BinSnapshot:
    """Both bins plus the shared thresholds, replaced wholesale on each poll."""

    bin1: BinStatus = field(default_factory=BinStatus)
    bin2: BinStatus = field(default_factory=BinStatus)
    thresholds: Thresholds = field(default_factory=Thresholds)

    @classmethod
    def from_json(cls, data) -> BinSnapshot:
        data = _object(data, "bin capacity")
        thresholds = Thresholds.from_json(data.get("thresholds", {}))
        bins = {}
        for name in ("bin1", "bin2"):
            raw = _object(data.get(name), name)
            distance = _number(raw, "distance")
            if distance < 0:
                raise DecodeError(f"Negative distance for {name}: {distance}")
            bins[name] = BinStatus(
                distance=distance,
                warning_sent=bool(raw.get("warningSent", False)),
                thresholds=thresholds,
            )
        return cls(thresholds=thresholds, **bins)

    def items(self) -> list[tuple[str, BinStatus]]:
        return [("bin1", self.bin1), ("bin2", self.bin2)]

    def to_dict(self) -> dict:
        return {
            "bin1": self.bin1.to_dict(),
            "bin2": self.bin2.to_dict(),
            "thresholds": self.thresholds.to_dict(),
        }


# ── Detections ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Detection:
    """One prediction. Box is top-left based, in source-frame pixels."""

    label: str
    confidence: float  # 0.0 - 1.0
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_prediction(cls, data) -> Detection:
        """Build from an inference prediction, whose x/y are box centers."""
        data = _object(data, "prediction")
        label = data.get("class")
        if not isinstance(label, str):
            raise DecodeError(f"Prediction without class label: {data!r}")
        width = _number(data, "width")
        height = _number(data, "height")
        return cls(
            label=label,
            confidence=_number(data, "confidence"),
            x=_number(data, "x") - width / 2,
            y=_number(data, "y") - height / 2,
            width=width,
            height=height,
        )

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Integer (x, y, w, h) for drawing."""
        return round(self.x), round(self.y), round(self.width), round(self.height)

    def to_dict(self) -> dict:
        return {
            "class": self.label,
            "confidence": self.confidence,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class ActiveDetection:
    """A detection currently shown on the overlay."""

    detection: Detection
    category: WasteCategory
    timestamp: float  # Monotonic seconds when created
    display_name: str

    @property
    def color(self) -> tuple[int, int, int]:
        return self.category.color

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_expired(self, now: float, display_time: float) -> bool:
        return self.age(now) >= display_time

    def to_dict(self, now: float) -> dict:
        data = self.detection.to_dict()
        data.update(
            category=self.category.value,
            displayName=self.display_name,
            age=round(self.age(now), 3),
        )
        return data
