"""
Bin capacity poller - fill levels of both bins.

Polls GET /bins and replaces the snapshot wholesale. Raises one operator
alert when a bin turns Full while its warning flag was still clear; the
flag itself is owned by the controller.
"""

from __future__ import annotations

import logging

from sorting_station.config import BIN_LABELS
from sorting_station.errors import StationError
from sorting_station.perception.readings import BinSnapshot, BinState

logger = logging.getLogger(__name__)

BIN_POLL = "bin_poll"


class BinPoller:
    """
    Periodic bin capacity fetch.

    Usage:
        poller = BinPoller(api, timers, log, params)
        poller.start()     # immediate fetch, then every bin_poll_interval
        poller.snapshot.bin1.state
    """

    def __init__(self, api, timers, log, params):
        self.api = api
        self.timers = timers
        self.log = log
        self.params = params
        self.snapshot = BinSnapshot()
        self.alerts = 0
        self._bins_ok = True

    def start(self):
        self.timers.every(BIN_POLL, self.params.bin_poll_interval, self.poll, immediate=True)

    def stop(self):
        self.timers.cancel(BIN_POLL)

    async def poll(self):
        try:
            snapshot = await self.api.get_bins()
        except StationError as e:
            logger.warning(f"Error fetching bin capacity: {e}")
            if self._bins_ok:
                self.log.add(f"Bin sensors unreachable: {e}", logging.WARNING, source="bins")
                self._bins_ok = False
            return
        if not self._bins_ok:
            self.log.add("Bin sensors reachable again", source="bins")
            self._bins_ok = True
        self.apply(snapshot)

    def apply(self, snapshot: BinSnapshot):
        """Swap in a new snapshot and alert on transitions to Full."""
        previous = self.snapshot
        self.snapshot = snapshot
        logger.debug(
            f"Bins: bin1={snapshot.bin1.state.value} {snapshot.bin1.fill_percentage}% "
            f"bin2={snapshot.bin2.state.value} {snapshot.bin2.fill_percentage}%"
        )

        for (name, before), (_, after) in zip(previous.items(), snapshot.items()):
            if after.state is BinState.FULL and before.state is not BinState.FULL and not before.warning_sent:
                number = name[-1]
                label = BIN_LABELS.get(name, name)
                self.alerts += 1
                self.log.add(f"Bin {number} ({label}) is FULL! Please empty it.", logging.WARNING, source="bins")
