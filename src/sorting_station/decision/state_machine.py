"""
Session state machine - the one authoritative station state.

States:
- IDLE: Monitoring off, no stream
- SCANNING: Polling the proximity sensor, no object
- ARMED: Object detected, stream starting
- STREAMING: Live stream, detection loop running
- COOLDOWN: Sort command issued, waiting before the next one

Timer callbacks never flip flags directly; they request a transition
here and illegal requests are rejected.
"""

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import Callable

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Station session state."""

    IDLE = auto()
    SCANNING = auto()
    ARMED = auto()
    STREAMING = auto()
    COOLDOWN = auto()


TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.SCANNING, SessionState.STREAMING}),
    SessionState.SCANNING: frozenset({SessionState.ARMED, SessionState.STREAMING, SessionState.IDLE}),
    SessionState.ARMED: frozenset({SessionState.STREAMING, SessionState.SCANNING, SessionState.IDLE}),
    SessionState.STREAMING: frozenset({SessionState.COOLDOWN, SessionState.SCANNING, SessionState.IDLE}),
    SessionState.COOLDOWN: frozenset({SessionState.SCANNING, SessionState.STREAMING, SessionState.IDLE}),
}

Listener = Callable[[SessionState, SessionState, str], None]


class SessionStateMachine:
    """
    Single writer of the session state.

    Usage:
        machine = SessionStateMachine()
        machine.add_listener(lambda old, new, reason: ...)
        machine.start_monitoring()              # IDLE -> SCANNING
        machine.request(SessionState.ARMED, "object detected")
    """

    def __init__(self):
        self.state = SessionState.IDLE
        self.monitoring = False
        self._listeners: list[Listener] = []

    @property
    def resting_state(self) -> SessionState:
        """Where the session returns once a stream or cooldown ends."""
        return SessionState.SCANNING if self.monitoring else SessionState.IDLE

    @property
    def is_cooldown(self) -> bool:
        return self.state is SessionState.COOLDOWN

    @property
    def can_arm(self) -> bool:
        return self.state is SessionState.SCANNING

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def can_transition(self, target: SessionState) -> bool:
        return target in TRANSITIONS[self.state]

    def request(self, target: SessionState, reason: str = "") -> bool:
        """
        Request a transition.

        Returns:
            True if the state changed. Requesting the current state is a
            no-op; an illegal transition is rejected and logged.
        """
        old = self.state
        if target is old:
            return False
        if not self.can_transition(target):
            logger.warning(f"Rejected transition: {old.name} -> {target.name} ({reason})")
            return False

        self.state = target
        logger.info(f"Transition: {old.name} -> {target.name}" + (f" ({reason})" if reason else ""))
        for listener in self._listeners:
            listener(old, target, reason)
        return True

    def settle(self, reason: str = "") -> bool:
        """Return to the resting state."""
        return self.request(self.resting_state, reason)

    def start_monitoring(self) -> bool:
        if self.monitoring:
            return False
        self.monitoring = True
        if self.state is SessionState.IDLE:
            self.request(SessionState.SCANNING, "monitoring started")
        return True

    def stop_monitoring(self) -> bool:
        if not self.monitoring:
            return False
        self.monitoring = False
        self.request(SessionState.IDLE, "monitoring stopped")
        return True
