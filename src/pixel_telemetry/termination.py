"""Best-effort flush when the session is torn down."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .events import Event, EventType
from .queue import EventQueue
from .session import PageContext, Session
from .transport.base import Transport


logger = logging.getLogger(__name__)


@dataclass
class TerminationFlusher:
    """
    Records ``session_end`` and pushes out everything still queued.

    Delivery goes through the transport's beacon, which does not need the
    event loop. If the beacon is unavailable or refuses the payload, a
    normal send is started without waiting for it. That only works while a
    loop is running; otherwise the batch is dropped. Nothing is retried and
    nothing is raised.
    """
    queue: EventQueue
    transport: Transport
    session: Session
    page: PageContext

    clock: Callable[[], float] = time.monotonic

    _done: bool = field(default=False, init=False)
    _pending: set[asyncio.Task] = field(default_factory=set, init=False)

    def handle(self) -> None:
        """Termination handler. Runs once; later calls are ignored."""
        if self._done:
            return
        self._done = True

        self.queue.enqueue(Event.create(
            EventType.SESSION_END,
            self.session,
            self.page,
            {
                "duration": self.session.elapsed_seconds(self.clock()),
                "final_url": self.page.url,
            },
        ))
        batch = self.queue.drain()

        if self._beacon(batch):
            return

        self._send_without_waiting(batch)

    async def flush_remaining(self) -> int:
        """
        Deliver events that reached the queue after termination.

        These are batches that were in flight when the signal fired and came
        back through requeue_front. Tried once through the beacon, then a
        normal send; failures are logged. Returns the number of events handed
        off.
        """
        batch = self.queue.drain()
        if not batch:
            return 0

        if not self._beacon(batch):
            try:
                await self.transport.send(batch)
            except Exception as e:
                logger.warning(f"Dropping {len(batch)} events after termination: {e}")
                return 0

        logger.debug(f"Delivered {len(batch)} events left after termination")
        return len(batch)

    def _beacon(self, batch: list[Event]) -> bool:
        try:
            accepted = self.transport.beacon(batch)
        except Exception as e:
            logger.warning(f"Beacon raised: {e}")
            return False

        if accepted:
            logger.debug(f"Beaconed {len(batch)} events")
        return accepted

    def _send_without_waiting(self, batch: list[Event]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, dropping {len(batch)} events at termination")
            return

        task = loop.create_task(self.transport.send(batch))
        self._pending.add(task)
        task.add_done_callback(self._on_send_done)

    def _on_send_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Termination send failed: {error}")

    @property
    def done(self) -> bool:
        return self._done

    @property
    def pending(self) -> set[asyncio.Task]:
        """Fallback sends still running."""
        return set(self._pending)
