"""
Timer registry - every periodic loop and delayed callback, by name.

Each handle is an asyncio task tracked under a name. Registering a name
again cancels the previous task, and cancel_all() tears everything down
on shutdown, so no callback outlives the session that scheduled it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Optional[Union[Awaitable[None], None]]]


async def _invoke(callback: Callback):
    result = callback()
    if inspect.isawaitable(result):
        await result


class Timers:
    """
    Named asyncio timers.

    Usage:
        timers = Timers()
        timers.every("sensor_poll", 1.0, monitor.poll, immediate=True)
        timers.after("grace", 5.0, monitor.grace_expired)
        timers.cancel("grace")
        await timers.cancel_all()
    """

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}

    def every(self, name: str, interval: float, callback: Callback, immediate: bool = False) -> asyncio.Task:
        """Run callback every interval seconds until cancelled.

        Errors in the callback are logged and the loop keeps its schedule.
        """

        async def _loop():
            loop = asyncio.get_running_loop()
            if not immediate:
                await asyncio.sleep(interval)
            while True:
                started = loop.time()
                try:
                    await _invoke(callback)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Timer {name} error: {e}", exc_info=True)
                if self._tasks.get(name) is not asyncio.current_task():
                    return  # Cancelled from inside its own callback
                elapsed = loop.time() - started
                await asyncio.sleep(max(0.0, interval - elapsed))

        return self._register(name, _loop())

    def after(self, name: str, delay: float, callback: Callback) -> asyncio.Task:
        """Run callback once after delay seconds."""

        async def _once():
            await asyncio.sleep(delay)
            if self._tasks.get(name) is asyncio.current_task():
                del self._tasks[name]
            try:
                await _invoke(callback)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Timer {name} error: {e}", exc_info=True)

        return self._register(name, _once())

    def spawn(self, name: str, coro: Awaitable[None]) -> asyncio.Task:
        """Track an arbitrary coroutine (e.g. a stream reader) under a name."""

        async def _run():
            try:
                await coro
            finally:
                if self._tasks.get(name) is asyncio.current_task():
                    del self._tasks[name]

        return self._register(name, _run())

    def cancel(self, *names: str) -> int:
        """Cancel timers by name. Returns how many were active."""
        count = 0
        current = _current_task()
        for name in names:
            task = self._tasks.pop(name, None)
            if task is None or task.done():
                continue
            count += 1
            if task is not current:
                task.cancel()
        return count

    def is_active(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    @property
    def names(self) -> list[str]:
        return sorted(name for name in self._tasks if self.is_active(name))

    async def cancel_all(self):
        """Cancel every timer and wait for them to finish."""
        current = _current_task()
        tasks = [t for t in self._tasks.values() if t is not current and not t.done()]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(f"Cancelled {len(tasks)} timers")

    def _register(self, name: str, coro) -> asyncio.Task:
        self.cancel(name)
        task = asyncio.ensure_future(coro)
        self._tasks[name] = task
        return task


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
