#!/usr/bin/env python3
"""
Timer source for the coding time tracker.
Wraps an asyncio event loop in fire-once, fire-periodic and async-call
primitives so every timer and I/O completion lands on the same loop.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Protocol

Callback = Callable[[], None]
DoneCallback = Callable[[Any, Optional[BaseException]], None]


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Scheduling primitives used by the tracker and the health scheduler."""

    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        ...

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        ...

    def run_async(self, awaitable: Awaitable[Any], on_done: DoneCallback) -> None:
        ...


class PeriodicTimer:
    """Re-arms itself after every fire until cancelled."""

    def __init__(
        self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callback
    ):
        self._loop = loop
        self.interval = interval
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self.cancelled = False
        self._arm()

    def _arm(self) -> None:
        self._handle = self._loop.call_later(self.interval, self._fire)

    def _fire(self) -> None:
        if self.cancelled:
            return
        self._arm()
        self._callback()

    def cancel(self) -> None:
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._loop = loop
        self._clock = clock

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        """Wall-clock seconds, used for session anchors and local dates."""
        return self._clock()

    def call_later(self, delay: float, callback: Callback) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)

    def call_every(self, interval: float, callback: Callback) -> PeriodicTimer:
        return PeriodicTimer(self.loop, interval, callback)

    def run_async(self, awaitable: Awaitable[Any], on_done: DoneCallback) -> None:
        task = asyncio.ensure_future(awaitable, loop=self.loop)

        def _complete(finished: "asyncio.Future[Any]") -> None:
            if finished.cancelled():
                on_done(None, asyncio.CancelledError())
                return
            error = finished.exception()
            on_done(None if error else finished.result(), error)

        task.add_done_callback(_complete)
