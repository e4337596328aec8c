"""
Decision Layer - What to do.

Contains:
- SessionStateMachine: the authoritative session state
- DetectionLoop: frame sampling and classification
- ActuationGate: cooldown-gated sort commands
"""

from .actuation import ActuationGate, CooldownWindow
from .detection import DetectionLoop, WasteStats
from .state_machine import SessionState, SessionStateMachine

__all__ = [
    "ActuationGate",
    "CooldownWindow",
    "DetectionLoop",
    "WasteStats",
    "SessionState",
    "SessionStateMachine",
]
