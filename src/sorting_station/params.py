"""
Runtime tunable parameters with JSON persistence.

All components share one Parameters instance. The web interface
can modify values at runtime; changes take effect on the next
request or timer tick. Single-threaded asyncio means no locks needed.

Only the two device addresses are meant to be persisted between runs,
but every field round-trips so tuning can be saved too.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from . import config

logger = logging.getLogger(__name__)

PARAMS_FILE = Path(os.environ.get("STATION_PARAMS_FILE", Path.cwd() / "params.json"))

# Environment variable -> field, applied after the JSON file
ENV_OVERRIDES = {
    "ROBOFLOW_API_KEY": "api_key",
    "ROBOFLOW_MODEL_ID": "model_id",
    "ROBOFLOW_VERSION": "model_version",
    "STATION_MODE": "mode",
    "CAMERA_ADDRESS": "camera_address",
    "CONTROLLER_ADDRESS": "controller_address",
}


@dataclass
class Parameters:
    """Runtime tunable parameters."""

    # Devices
    camera_address: str = config.DEFAULT_CAMERA_ADDRESS
    controller_address: str = config.DEFAULT_CONTROLLER_ADDRESS
    mode: str = config.DEFAULT_MODE
    proxy_url: str = config.DEFAULT_PROXY_URL

    # Inference endpoint
    inference_url: str = config.DEFAULT_INFERENCE_URL
    model_id: str = ""
    model_version: str = ""
    api_key: str = ""

    # Confidence
    confidence_floor: float = config.CONFIDENCE_FLOOR
    actuation_threshold: float = config.ACTUATION_THRESHOLD
    overlap_threshold: float = config.OVERLAP_THRESHOLD

    # Network
    request_timeout: float = config.REQUEST_TIMEOUT
    stream_read_timeout: float = config.STREAM_READ_TIMEOUT

    # Poll intervals
    sensor_poll_interval: float = config.SENSOR_POLL_INTERVAL
    bin_poll_interval: float = config.BIN_POLL_INTERVAL
    status_poll_interval: float = config.STATUS_POLL_INTERVAL
    detection_interval: float = config.DETECTION_INTERVAL

    # Cooldowns and delays
    sensor_cooldown: float = config.SENSOR_COOLDOWN
    detection_cooldown: float = config.DETECTION_COOLDOWN
    stream_timeout: float = config.STREAM_TIMEOUT
    grace_period: float = config.GRACE_PERIOD
    reconnect_delay: float = config.RECONNECT_DELAY
    post_trigger_stop: float = config.POST_TRIGGER_STOP
    clear_delay: float = config.CLEAR_DELAY
    frame_wait: float = config.FRAME_WAIT
    frame_settle: float = config.FRAME_SETTLE

    # Overlay
    display_time: float = config.DISPLAY_TIME
    render_hz: int = config.RENDER_HZ

    @property
    def is_production(self) -> bool:
        return self.mode == "production"

    def update(self, **kwargs):
        """Update parameters from dict (e.g., from web API). Unknown keys are ignored."""
        names = {f.name for f in fields(self)}
        for key, value in kwargs.items():
            if key in names:
                expected_type = type(getattr(self, key))
                try:
                    if expected_type is str:
                        value = str(value).strip()
                    setattr(self, key, expected_type(value))
                except (TypeError, ValueError):
                    logger.warning(f"Invalid value for {key}: {value}")
        if self.mode not in config.MODES:
            logger.warning(f"Unknown mode {self.mode!r}, using {config.DEFAULT_MODE}")
            self.mode = config.DEFAULT_MODE

    def save(self, path: Path | None = None):
        """Persist to JSON file."""
        path = path or PARAMS_FILE
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)
        logger.info(f"Parameters saved to {path}")

    @classmethod
    def load(cls, path: Path | None = None, environ=None) -> Parameters:
        """Load from JSON file (or defaults), then apply environment overrides."""
        path = path or PARAMS_FILE
        environ = os.environ if environ is None else environ
        params = cls()
        if path.exists():
            try:
                with open(path) as f:
                    data = json.load(f)
                params.update(**data)
                logger.info(f"Parameters loaded from {path}")
            except Exception as e:
                logger.warning(f"Failed to load {path}: {e}, using defaults")

        overrides = {
            field: environ[var] for var, field in ENV_OVERRIDES.items() if environ.get(var)
        }
        if overrides:
            params.update(**overrides)
        return params

    def to_dict(self, redact: bool = False) -> dict:
        """Convert to dict for JSON API."""
        data = asdict(self)
        if redact and data["api_key"]:
            data["api_key"] = "***"
        return data
