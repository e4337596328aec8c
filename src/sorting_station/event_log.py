"""
Operator event log - short rolling history, newest first.

This is the operator's primary feedback channel. Every entry is also
forwarded to the standard logger so nothing shown to the operator is
missing from the process log.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from .config import EVENT_LOG_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogEntry:
    """One operator-visible event."""

    timestamp: float  # Wall clock (epoch seconds)
    message: str
    level: int = logging.INFO
    source: str = "station"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "message": self.message,
            "level": logging.getLevelName(self.level),
            "source": self.source,
        }


class EventLog:
    """
    Capped, most-recent-first event history.

    The entry tuple is replaced wholesale on every append, so readers never
    observe a half-updated list.
    """

    def __init__(self, size: int = EVENT_LOG_SIZE, clock=time.time):
        self.size = size
        self._clock = clock
        self._entries: tuple[LogEntry, ...] = ()

    def add(self, message: str, level: int = logging.INFO, source: str = "station") -> LogEntry:
        entry = LogEntry(self._clock(), message, level, source)
        self._entries = (entry,) + self._entries[: self.size - 1]
        logging.getLogger(f"{__name__}.{source}").log(level, message)
        return entry

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self._entries]

    def clear(self):
        self._entries = ()

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
