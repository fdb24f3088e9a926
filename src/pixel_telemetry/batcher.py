"""Periodic flush of the event queue with next-tick retry."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from .queue import EventQueue
from .scheduler import ScheduledTask, Scheduler
from .transport.base import Transport


logger = logging.getLogger(__name__)


@dataclass
class Batcher:
    """
    Drains the queue on a fixed interval and hands the batch to a transport.

    A failed batch is put back at the head of the queue and waits for the
    next tick; there is no immediate retry, so a degraded collector sees at
    most one attempt per interval. Retries and queue growth are unbounded.

    Only one flush is in flight at a time. A flush requested while a send
    is pending does nothing; its events go out with the next one.
    """
    queue: EventQueue
    transport: Transport
    flush_interval_seconds: float = 5.0

    _handle: ScheduledTask | None = field(default=None, init=False)
    _idle: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _last_flush: float = field(default_factory=time.time, init=False)
    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        self._idle.set()
        self._stats = {
            "batches_sent": 0,
            "events_sent": 0,
            "flush_errors": 0,
            "events_requeued": 0,
            "flushes_skipped": 0,
        }

    async def flush(self) -> bool:
        """
        Drain the queue and attempt delivery once.

        Returns True if a batch was delivered, False if there was nothing to
        send, a flush was already in flight, or delivery failed.
        """
        if not self._idle.is_set():
            self._stats["flushes_skipped"] += 1
            logger.debug("Flush already in flight, skipping")
            return False

        if self.queue.is_empty:
            return False

        batch = self.queue.drain()
        self._idle.clear()
        self._last_flush = time.time()

        try:
            await self.transport.send(batch)
        except Exception as e:
            self.queue.requeue_front(batch)
            self._stats["flush_errors"] += 1
            self._stats["events_requeued"] += len(batch)
            logger.warning(f"Flush failed, {len(batch)} events requeued: {e}")
            return False
        finally:
            self._idle.set()

        self._stats["batches_sent"] += 1
        self._stats["events_sent"] += len(batch)
        logger.debug(f"Flushed {len(batch)} events")
        return True

    async def _tick(self) -> None:
        await self.flush()

    def start(self, scheduler: Scheduler) -> ScheduledTask:
        """Begin flushing on the scheduler's clock."""
        if self._handle is not None and not self._handle.cancelled:
            return self._handle

        self._handle = scheduler.every(self.flush_interval_seconds, self._tick, name="flush")
        return self._handle

    def cancel(self) -> None:
        """Stop future ticks without flushing."""
        if self._handle is not None:
            self._handle.cancel()

    async def wait_idle(self) -> None:
        """Wait until no send is in flight."""
        await self._idle.wait()

    async def stop(self) -> None:
        """
        Cancel the schedule and make a last delivery attempt.

        A send already in flight is allowed to finish first, so events
        queued behind it (or requeued by it) are part of the last flush.
        """
        self.cancel()
        await self.wait_idle()
        await self.flush()
        logger.info(f"Batcher stopped. Stats: {self.stats}")

    @property
    def in_flight(self) -> bool:
        return not self._idle.is_set()

    @property
    def stats(self) -> dict:
        """Get batcher statistics."""
        return {
            **self._stats,
            "queue_size": len(self.queue),
            "seconds_since_flush": time.time() - self._last_flush,
        }
