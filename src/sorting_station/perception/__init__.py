"""
Perception Layer - What the station sees.

Contains:
- Readings: sensor, bin and detection data parsed from remote services
- WasteClassifier: label -> sorting category
- OverlayRenderer: fading detection boxes over the live frame
"""

from .classifier import WasteCategory, WasteClassifier
from .overlay import OverlayRenderer
from .readings import (
    ActiveDetection,
    BinSnapshot,
    BinState,
    BinStatus,
    Detection,
    SensorReading,
    Thresholds,
)

__all__ = [
    "WasteCategory",
    "WasteClassifier",
    "OverlayRenderer",
    "ActiveDetection",
    "BinSnapshot",
    "BinState",
    "BinStatus",
    "Detection",
    "SensorReading",
    "Thresholds",
]
