"""Independently start/stop-able timer tasks."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None] | None]


class Poller:
    """Runs *callback* every *interval* seconds on the running event loop.

    * ``start()`` replaces any live task, so at most one exists per poller.
    * ``stop()`` is idempotent and may be called from inside the callback.
    * Ticks never overlap: while a callback is still running, ticks that
      fall due are skipped and the schedule resumes on the next boundary.
    * A failing callback is logged and the poller keeps going.
    """

    def __init__(self, name: str, interval: float, callback: TickCallback) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self._interval = interval
        self._callback = callback
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Takes effect on the next ``start()``."""
        if value <= 0:
            raise ValueError(f"interval must be positive, got {value}")
        self._interval = value

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"poller:{self.name}")
        _logger.debug("Poller %s started interval=%.2fs", self.name, self._interval)

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        # Stopping from inside our own callback: let the loop notice and exit
        # once the callback returns instead of cancelling mid-flight.
        if task is not asyncio.current_task() and not task.done():
            task.cancel()
        _logger.debug("Poller %s stopped", self.name)

    async def _run(self) -> None:
        task = asyncio.current_task()
        loop = asyncio.get_running_loop()
        interval = self._interval
        next_at = loop.time() + interval
        while self._task is task:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            if self._task is not task:
                break
            self.ticks += 1
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                _logger.warning("Poller %s tick failed", self.name, exc_info=True)

            next_at += interval
            now = loop.time()
            if next_at <= now:
                missed = int((now - next_at) // interval) + 1
                next_at += missed * interval


async def cancel_and_wait(tasks: list[asyncio.Task[None]]) -> None:
    """Cancel *tasks* and wait until each has unwound."""
    for task in tasks:
        if not task.done():
            task.cancel()
    for task in tasks:
        if task is asyncio.current_task():
            continue
        with contextlib.suppress(asyncio.CancelledError):
            await task
