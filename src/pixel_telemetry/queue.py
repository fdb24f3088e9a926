"""Ordered in-memory buffer of pending events."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable

from .events import Event


logger = logging.getLogger(__name__)


@dataclass
class EventQueue:
    """
    FIFO buffer shared by probes, the batcher and the termination flusher.

    None of the operations await, so on a single event loop each one is an
    indivisible step: an enqueue can never land in the middle of a drain.
    No lock is needed as long as that stays true.
    """
    _events: deque[Event] = field(default_factory=deque, init=False)

    def enqueue(self, event: Event) -> None:
        """Append an event to the tail."""
        self._events.append(event)
        logger.debug(f"Enqueued event: {event.type}")

    def drain(self) -> list[Event]:
        """Remove and return everything currently queued, oldest first."""
        batch = list(self._events)
        self._events.clear()
        return batch

    def requeue_front(self, batch: Iterable[Event]) -> None:
        """
        Put a previously drained batch back at the head.

        The batch keeps its internal order and lands ahead of anything
        enqueued since it was drained.
        """
        self._events.extendleft(reversed(list(batch)))

    def snapshot(self) -> list[Event]:
        """Copy of the current contents (for diagnostics)."""
        return list(self._events)

    @property
    def is_empty(self) -> bool:
        return not self._events

    def __len__(self) -> int:
        return len(self._events)
