"""
Remote resource client - one request wrapper for every HTTP collaborator.

Controller calls go through an ordered list of transports sharing one
timeout budget:
- production:  proxy
- development: direct controller address, then proxy

Absolute-URL calls (inference API) use a single attempt.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

import aiohttp

from sorting_station.errors import (
    DecodeError,
    HttpError,
    NetworkError,
    RemoteError,
    Timeout,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transport:
    """One way of reaching the controller."""

    name: str  # "direct" or "proxy"
    base_url: str

    def url(self, endpoint: str) -> str:
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def device_url(address: str) -> str:
    """Base URL for a bare device address ("192.168.1.5" or "host:81")."""
    address = address.strip().rstrip("/")
    if address.startswith(("http://", "https://")):
        return address
    return f"http://{address}"


class RemoteClient:
    """
    Async HTTP wrapper with timeouts, decoding and transport fallback.

    Reads addresses and mode from the live Parameters on every call, so
    operator changes apply to the next request.

    Usage:
        client = RemoteClient(params)
        await client.start()
        reading = await client.call("sensor")
        await client.call("control", method="POST", json={"command": "plastic"})
        await client.close()
    """

    def __init__(self, params, session: aiohttp.ClientSession | None = None):
        self.params = params
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def start(self):
        """Open the shared HTTP session."""
        _ = self.session

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def transports(self) -> list[Transport]:
        """Ordered transport strategies for controller calls."""
        proxy = Transport("proxy", self.params.proxy_url)
        if self.params.is_production:
            return [proxy]
        address = self.params.controller_address
        if not address:
            return [proxy]
        return [Transport("direct", device_url(address)), proxy]

    async def call(self, endpoint: str, method: str = "GET", timeout: float | None = None, **kwargs):
        """
        Call a controller endpoint, trying each transport in order.

        Args:
            endpoint: Path on the controller, e.g. "sensor" or "control".
            method: HTTP method.
            timeout: Total budget across all transports (default from params).
            **kwargs: Passed to aiohttp (json, data, params, headers).

        Returns:
            Decoded JSON (dict/list) or text.

        Raises:
            Timeout: Budget exhausted.
            HttpError / DecodeError / NetworkError: Single transport failed.
            NetworkError: Every transport failed (combined message).
        """
        timeout = self.params.request_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        errors: list[tuple[Transport, RemoteError]] = []

        for transport in self.transports():
            remaining = deadline - loop.time()
            url = transport.url(endpoint)
            if remaining <= 0:
                raise Timeout(url, timeout)
            try:
                return await self._request(method, url, remaining, **kwargs)
            except Timeout:
                raise
            except RemoteError as e:
                logger.debug(f"{transport.name} transport failed for {endpoint}: {e}")
                errors.append((transport, e))

        if len(errors) == 1:
            raise errors[0][1]
        detail = "; ".join(f"{t.name}: {e}" for t, e in errors)
        raise NetworkError(f"All transports failed for {endpoint} ({detail})", [e for _, e in errors])

    async def request(self, url: str, method: str = "GET", timeout: float | None = None, **kwargs):
        """Single-attempt call to an absolute URL."""
        timeout = self.params.request_timeout if timeout is None else timeout
        return await self._request(method, url, timeout, **kwargs)

    async def _request(self, method: str, url: str, timeout: float, **kwargs):
        headers = {"Accept": "application/json, text/plain, */*"}
        headers.update(kwargs.pop("headers", None) or {})
        try:
            async with self.session.request(
                method,
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
                **kwargs,
            ) as response:
                text = await response.text(errors="replace")
                if not 200 <= response.status < 300:
                    raise HttpError(response.status, text, url)
                if _is_json(response.content_type):
                    try:
                        return json.loads(text) if text else None
                    except ValueError as e:
                        raise DecodeError(f"Invalid JSON from {url}: {e}") from e
                return text
        except asyncio.TimeoutError as e:
            raise Timeout(url, timeout) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"{type(e).__name__}: {e or url}") from e


def _is_json(content_type: str) -> bool:
    return content_type == "application/json" or content_type.endswith("+json")
