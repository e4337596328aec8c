"""
Station error taxonomy.

Remote call failures (RemoteError and subclasses) are transient: polling
loops log them and keep their previous state. Precondition and state
conflicts come from local requests that cannot be honoured right now.
"""

from __future__ import annotations


class StationError(Exception):
    """Base class for all station errors."""


class RemoteError(StationError):
    """A call to the controller, camera or inference API failed."""


class Timeout(RemoteError):
    """Remote call exceeded its deadline."""

    def __init__(self, url: str, timeout: float):
        super().__init__(f"Request timeout after {timeout:.1f}s: {url}")
        self.url = url
        self.timeout = timeout


class HttpError(RemoteError):
    """Remote answered with a non-2xx status."""

    def __init__(self, status: int, body: str = "", url: str = ""):
        super().__init__(f"HTTP {status}: {body[:200]}" if body else f"HTTP {status}")
        self.status = status
        self.body = body
        self.url = url


class NetworkError(RemoteError):
    """Remote unreachable (DNS, refused, reset), or every transport failed."""

    def __init__(self, message: str, errors: list[Exception] | None = None):
        super().__init__(message)
        self.errors = errors or []


class DecodeError(RemoteError):
    """Response body could not be decoded into the expected shape."""


class PreconditionFailed(StationError):
    """Request cannot run until something is configured or ready."""


class NoCameraConfigured(PreconditionFailed):
    def __init__(self):
        super().__init__("Camera address not set")


class InferenceNotConfigured(PreconditionFailed):
    def __init__(self, missing: list[str]):
        super().__init__(f"Inference API not configured (missing: {', '.join(missing)})")
        self.missing = missing


class StateConflict(StationError):
    """Request conflicts with the current session state. Benign."""


class AlreadyStreaming(StateConflict):
    def __init__(self):
        super().__init__("Stream already active")
