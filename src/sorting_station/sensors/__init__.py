"""
Sensor Layer - Remote station inputs.

Provides:
- ProximityMonitor: ultrasonic sensor poll, stream gating
- StreamController: live MJPEG camera stream
- BinPoller: bin fill levels
"""

from .bins import BinPoller
from .proximity import ProximityMonitor
from .stream import MjpegParser, StopReason, StreamController, StreamSession

__all__ = [
    "BinPoller",
    "ProximityMonitor",
    "MjpegParser",
    "StopReason",
    "StreamController",
    "StreamSession",
]
