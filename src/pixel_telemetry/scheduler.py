"""Cancellable periodic tasks, on the event loop or on a virtual clock."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable


logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


@dataclass(eq=False)
class ScheduledTask:
    """
    Handle to a periodic schedule.

    Once ``cancel()`` returns, the callback is never started again. A tick
    that is already running is allowed to finish.
    """
    name: str
    interval_seconds: float
    _on_cancel: Callable[[], None] | None = field(default=None, repr=False)
    _cancelled: bool = field(default=False, init=False)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class Scheduler(ABC):
    """Source of periodic ticks."""

    @abstractmethod
    def every(self, interval_seconds: float, callback: TickCallback, name: str = "task") -> ScheduledTask:
        """Run ``callback`` every ``interval_seconds`` until cancelled."""
        ...

    @abstractmethod
    def now(self) -> float:
        """Current time on this scheduler's clock (seconds)."""
        ...

    async def wait_idle(self) -> None:
        """Wait for ticks that are still running (none by default)."""
        pass

    @staticmethod
    async def _run_tick(name: str, callback: TickCallback) -> None:
        try:
            await callback()
        except Exception as e:
            logger.error(f"Scheduled task {name} failed: {e}")


class AsyncioScheduler(Scheduler):
    """
    Real-time scheduler on the running event loop.

    Each tick is spawned as its own task, so a slow callback (a hanging
    send) never delays the following ticks.
    """

    def __init__(self) -> None:
        self._ticks: set[asyncio.Task] = set()

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def every(self, interval_seconds: float, callback: TickCallback, name: str = "task") -> ScheduledTask:
        loop_task = asyncio.create_task(self._timer_loop(interval_seconds, callback, name))
        return ScheduledTask(
            name=name,
            interval_seconds=interval_seconds,
            _on_cancel=loop_task.cancel,
        )

    async def _timer_loop(self, interval_seconds: float, callback: TickCallback, name: str) -> None:
        logger.info(f"Schedule {name} started (interval={interval_seconds}s)")

        while True:
            try:
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                logger.info(f"Schedule {name} cancelled")
                raise

            tick = asyncio.create_task(self._run_tick(name, callback))
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)

    async def wait_idle(self) -> None:
        """Wait for ticks that are still running."""
        if self._ticks:
            await asyncio.gather(*self._ticks, return_exceptions=True)


@dataclass
class _VirtualTimer:
    handle: ScheduledTask
    callback: TickCallback
    next_due: float


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler driven by ``advance()``.

    Time only moves when the caller advances it. Due ticks fire in time
    order (ties in registration order) and each is awaited before the next
    one starts.

    Usage:
        scheduler = VirtualScheduler()
        scheduler.every(5.0, batcher.flush)
        await scheduler.advance(12.0)   # two flushes
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._timers: list[_VirtualTimer] = []

    def now(self) -> float:
        return self._now

    def every(self, interval_seconds: float, callback: TickCallback, name: str = "task") -> ScheduledTask:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        handle = ScheduledTask(name=name, interval_seconds=interval_seconds)
        timer = _VirtualTimer(handle=handle, callback=callback, next_due=self._now + interval_seconds)
        handle._on_cancel = lambda: self._timers.remove(timer)
        self._timers.append(timer)
        return handle

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every tick that falls due."""
        target = self._now + seconds

        while True:
            due = [t for t in self._timers if t.next_due <= target]
            if not due:
                break

            timer = min(due, key=lambda t: t.next_due)
            self._now = timer.next_due
            timer.next_due += timer.handle.interval_seconds
            await self._run_tick(timer.handle.name, timer.callback)

        self._now = target

    @property
    def active(self) -> int:
        """Number of schedules not yet cancelled."""
        return len(self._timers)
