"""
Stream controller - owns the one live camera stream.

The camera serves MJPEG at /stream. A reader task splits the byte stream
into JPEG frames on SOI/EOI markers and decodes each into a BGR frame.
A decoded frame plays the part of a loaded image; a connection or HTTP
failure plays the part of an image error and schedules one reconnect.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

import aiohttp
import cv2
import numpy as np

from sorting_station.comm.client import device_url
from sorting_station.config import MJPEG_MAX_BUFFER, STREAM_CHUNK_SIZE, WATCHDOG_INTERVAL
from sorting_station.errors import AlreadyStreaming, HttpError, NetworkError, NoCameraConfigured

logger = logging.getLogger(__name__)

SOI = b"\xff\xd8"
EOI = b"\xff\xd9"

# Shown between stop() and the final clear, breaks the link to the old frame
PLACEHOLDER_FRAME = np.zeros((1, 1, 3), dtype=np.uint8)

# Timer names
READER = "stream_reader"
ATTACH = "stream_attach"
RECONNECT = "stream_reconnect"
WATCHDOG = "stream_watchdog"
CLEAR = "stream_clear"


class StopReason(Enum):
    """Why a stream session ended."""

    MANUAL = "manual"
    OBJECT_GONE = "object gone"
    SORTING = "sorting"
    TIMEOUT = "timeout"
    MONITORING_OFF = "monitoring off"
    SHUTDOWN = "shutdown"


@dataclass
class StreamSession:
    """The single stream session. Reset (not reused) on stop."""

    active: bool = False
    start_time: float = 0.0  # Monotonic seconds
    duration_seconds: int = 0

    def to_dict(self) -> dict:
        return {"active": self.active, "durationSeconds": self.duration_seconds}


class MjpegParser:
    """Incremental JPEG splitter for multipart MJPEG bodies."""

    def __init__(self, max_buffer: int = MJPEG_MAX_BUFFER):
        self.max_buffer = max_buffer
        self._buffer = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        """Add bytes, return every complete JPEG now available."""
        self._buffer += chunk
        frames = []
        while True:
            start = self._buffer.find(SOI)
            if start == -1:
                # Keep a trailing 0xFF in case the marker straddles chunks
                self._buffer = self._buffer[-1:]
                break
            end = self._buffer.find(EOI, start + 2)
            if end == -1:
                self._buffer = self._buffer[start:]
                break
            frames.append(self._buffer[start:end + 2])
            self._buffer = self._buffer[end + 2:]

        if len(self._buffer) > self.max_buffer:
            logger.warning(f"MJPEG buffer overflow ({len(self._buffer)} bytes), dropping")
            self._buffer = b""
        return frames


class StreamController:
    """
    Lifecycle of the live camera stream.

    Usage:
        stream = StreamController(params, timers, log, session=http)
        stream.start()          # raises NoCameraConfigured / AlreadyStreaming
        frame = stream.frame    # latest decoded BGR frame
        stream.stop(StopReason.MANUAL)
    """

    def __init__(self, params, timers, log, session: aiohttp.ClientSession | None = None, overlay=None, clock=time.monotonic):
        self.params = params
        self.timers = timers
        self.log = log
        self.overlay = overlay
        self._http = session
        self._clock = clock

        self.session = StreamSession()
        self.source_url: str | None = None
        self.frame: np.ndarray | None = None
        self._generation = 0  # Bumped on every attach/stop; stale readers are ignored
        self._frame_event = asyncio.Event()

        # Callbacks (set by Station)
        self.on_stopped = None  # (StopReason) -> None

        # Frame rate
        self.frames_loaded = 0
        self.fps = 0.0
        self._fps_frames = 0
        self._fps_since = 0.0

    @property
    def http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
        return self._http

    @http.setter
    def http(self, session: aiohttp.ClientSession):
        self._http = session

    @property
    def is_active(self) -> bool:
        return self.session.active

    @property
    def is_loaded(self) -> bool:
        """A real frame (not the placeholder) with nonzero size is held."""
        frame = self.frame
        return (
            self.source_url is not None
            and frame is not None
            and frame is not PLACEHOLDER_FRAME
            and frame.shape[0] > 0
            and frame.shape[1] > 0
        )

    def stream_url(self) -> str:
        """Cache-busted stream URL for the configured camera."""
        query = urlencode({"t": int(time.time() * 1000), "r": uuid.uuid4().hex[:6]})
        return f"{device_url(self.params.camera_address)}/stream?{query}"

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> StreamSession:
        """
        Start a new session.

        Clears any previous source, then attaches a fresh URL after a short
        delay.

        Raises:
            NoCameraConfigured: No camera address set.
            AlreadyStreaming: A session is active (benign).
        """
        if not self.params.camera_address:
            raise NoCameraConfigured()
        if self.session.active:
            raise AlreadyStreaming()

        self._detach()
        self.timers.cancel(CLEAR)
        self.frame = None
        self.session = StreamSession(active=True, start_time=self._clock())
        self._fps_frames = 0
        self._fps_since = self._clock()
        self.log.add("Video stream starting...", source="stream")

        self.timers.after(ATTACH, self.params.clear_delay, self._attach)
        self.timers.every(WATCHDOG, WATCHDOG_INTERVAL, self.check_duration)
        return self.session

    def stop(self, reason: StopReason = StopReason.MANUAL) -> bool:
        """
        End the session. No-op (False) when nothing is streaming.

        Handlers are detached before the source is dropped, so the reader's
        own cancellation never reports as a stream error.
        """
        if not self.session.active:
            return False

        self._detach()
        self.timers.cancel(WATCHDOG)
        self.session = StreamSession()
        self.fps = 0.0

        self.frame = PLACEHOLDER_FRAME
        self.timers.after(CLEAR, self.params.clear_delay, self._clear_frame)

        if self.overlay is not None:
            self.overlay.clear()

        if reason is StopReason.TIMEOUT:
            self.log.add("Stream timeout - Auto stopped", logging.WARNING, source="stream")
        else:
            self.log.add(f"Video stream stopped ({reason.value})", source="stream")

        if self.on_stopped is not None:
            self.on_stopped(reason)
        return True

    def check_duration(self):
        """Watchdog tick: update duration and fps, force-stop at the timeout."""
        if not self.session.active:
            return
        now = self._clock()
        elapsed = now - self.session.start_time
        self.session.duration_seconds = int(elapsed)

        window = now - self._fps_since
        if window > 0:
            self.fps = round(self._fps_frames / window, 1)
        self._fps_frames = 0
        self._fps_since = now

        if elapsed >= self.params.stream_timeout:
            self.stop(StopReason.TIMEOUT)

    async def wait_for_frame(self, timeout: float) -> bool:
        """Wait until a decodable frame is held. False on timeout."""
        if self.is_loaded:
            return True
        self._frame_event.clear()
        try:
            await asyncio.wait_for(self._frame_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.is_loaded

    # ── Source handling ─────────────────────────────────────────

    def _detach(self):
        self._generation += 1
        self.timers.cancel(READER, ATTACH, RECONNECT)
        self.source_url = None

    def _attach(self):
        if not self.session.active:
            return
        self._generation += 1
        generation = self._generation
        url = self.stream_url()
        self.source_url = url
        logger.info(f"Setting stream URL: {url}")
        self.timers.spawn(READER, self._read(url, generation))

    def _clear_frame(self):
        if self.frame is PLACEHOLDER_FRAME:
            self.frame = None

    async def _read(self, url: str, generation: int):
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.params.request_timeout,
            sock_read=self.params.stream_read_timeout,
        )
        try:
            async with self.http.get(url, timeout=timeout) as response:
                if response.status != 200:
                    raise HttpError(response.status, await response.text(errors="replace"), url)
                parser = MjpegParser()
                async for chunk in response.content.iter_chunked(STREAM_CHUNK_SIZE):
                    for jpeg in parser.feed(chunk):
                        self._on_load(jpeg, generation)
            raise NetworkError("Stream closed by camera")
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, HttpError, NetworkError) as e:
            self._on_error(e, generation)

    def _on_load(self, jpeg: bytes, generation: int):
        if generation != self._generation:
            return
        frame = cv2.imdecode(np.frombuffer(jpeg, dtype=np.uint8), cv2.IMREAD_COLOR)
        if frame is None:
            logger.debug(f"Failed to decode frame ({len(jpeg)} bytes)")
            return
        self.frame = frame
        self.frames_loaded += 1
        self._fps_frames += 1
        if self.overlay is not None:
            self.overlay.resize(frame.shape[1], frame.shape[0])
        self._frame_event.set()

    def _on_error(self, error: Exception, generation: int):
        if generation != self._generation:
            return  # Handlers detached
        logger.error(f"Stream failed to load: {error}")
        self.log.add("Stream connection failed - retrying...", logging.WARNING, source="stream")
        self.timers.after(RECONNECT, self.params.reconnect_delay, self._reconnect)

    def _reconnect(self):
        if not self.session.active or not self.params.camera_address:
            return
        logger.info("Retrying stream connection...")
        self._detach()
        self.timers.after(ATTACH, self.params.clear_delay, self._attach)
