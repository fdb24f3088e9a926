"""Periodic liveness events."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .batcher import Batcher
from .events import Event, EventType
from .queue import EventQueue
from .scheduler import ScheduledTask, Scheduler
from .session import PageContext, Session


logger = logging.getLogger(__name__)


@dataclass
class HeartbeatScheduler:
    """
    Appends a heartbeat on its own interval and flushes right away.

    The out-of-band flush keeps liveness signals from waiting behind a long
    batch interval.
    """
    queue: EventQueue
    batcher: Batcher
    session: Session
    page: PageContext
    interval_seconds: float = 30.0

    # Monotonic clock used for uptime; swapped for a virtual one in tests
    clock: Callable[[], float] = time.monotonic

    _handle: ScheduledTask | None = field(default=None, init=False)
    _beats: int = field(default=0, init=False)

    async def beat(self) -> None:
        """Record one heartbeat and flush."""
        now = self.clock()
        self.queue.enqueue(Event.create(
            EventType.HEARTBEAT,
            self.session,
            self.page,
            {
                "uptime": self.session.uptime_ms(now),
                "active_time": self.session.elapsed_seconds(now),
            },
        ))
        self._beats += 1
        await self.batcher.flush()

    def start(self, scheduler: Scheduler) -> ScheduledTask:
        if self._handle is not None and not self._handle.cancelled:
            return self._handle

        self._handle = scheduler.every(self.interval_seconds, self.beat, name="heartbeat")
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    @property
    def beats(self) -> int:
        """Heartbeats recorded so far."""
        return self._beats
