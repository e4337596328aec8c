"""
Controller API - typed access to the ESP32 sorting controller.

Endpoints:
    GET  /sensor   -> SensorReading
    GET  /bins     -> BinSnapshot
    GET  /status   -> liveness
    POST /control  {"command": <command>}
"""

from __future__ import annotations

import logging

from sorting_station.config import CONTROL_COMMANDS
from sorting_station.perception.readings import BinSnapshot, SensorReading

from .client import RemoteClient

logger = logging.getLogger(__name__)


class ControllerAPI:
    """Controller endpoints on top of RemoteClient."""

    def __init__(self, client: RemoteClient):
        self.client = client

    async def get_sensor(self) -> SensorReading:
        return SensorReading.from_json(await self.client.call("sensor"))

    async def get_bins(self) -> BinSnapshot:
        return BinSnapshot.from_json(await self.client.call("bins"))

    async def get_status(self):
        return await self.client.call("status")

    async def send_command(self, command: str, **extra):
        """
        Send an actuator command.

        Raises:
            ValueError: Unknown command.
            RemoteError: Delivery failed.
        """
        if command not in CONTROL_COMMANDS:
            raise ValueError(f"Unknown controller command: {command!r}")
        logger.debug(f"Sending command: {command}")
        return await self.client.call("control", method="POST", json={"command": command, **extra})

