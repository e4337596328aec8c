"""
Web Layer - Operator interface.

Provides:
- Status, event log and bin snapshot (JSON)
- Monitoring, stream and detection controls
- Manual controller commands
- Parameter tuning
- Live frame with detection overlay (MJPEG)
"""

from .server import create_app, run_server

__all__ = ["create_app", "run_server"]
