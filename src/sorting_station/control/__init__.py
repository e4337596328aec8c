"""
Control Layer - Execution.

Station coordinator and the named timer registry it schedules on.
"""

from .station import Station
from .timers import Timers

__all__ = ["Station", "Timers"]
