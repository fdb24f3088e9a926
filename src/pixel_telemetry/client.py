"""Telemetry client - wires the queue, schedules and transports together."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .batcher import Batcher
from .config import PixelConfig
from .errors import PixelError
from .events import Event, EventType
from .heartbeat import HeartbeatScheduler
from .lifecycle import TerminationSignal
from .location import LocationInfo, LocationResolver
from .queue import EventQueue
from .scheduler import AsyncioScheduler, Scheduler
from .session import PageContext, Session
from .termination import TerminationFlusher
from .transport import DebugTransport, HttpTransport, Transport


logger = logging.getLogger(__name__)


class ClientState(str, Enum):
    """Session lifecycle."""
    BOOTSTRAPPING = "bootstrapping"
    ACTIVE = "active"
    TERMINATING = "terminating"
    ENDED = "ended"


@dataclass
class PixelClient:
    """
    One telemetry session.

    Usage:
        client = PixelClient(
            config=PixelConfig(collector_url="https://collector.example/track"),
            page=PageContext(url="https://example.com/"),
        )
        await client.start(bind_process_exit=True)
        client.track(EventType.CLICK, {"label": "signup"})
        ...
        await client.stop()

    Every piece of state lives on the instance, so several clients can run
    side by side (one per test, for example). Collaborators left as None
    are built from the config.
    """
    config: PixelConfig = field(default_factory=PixelConfig)
    page: PageContext = field(default_factory=PageContext)

    transport: Transport | None = None
    scheduler: Scheduler | None = None
    resolver: LocationResolver | None = None
    termination: TerminationSignal | None = None
    session: Session | None = None

    # Monotonic clock for uptime and duration
    clock: Callable[[], float] = time.monotonic

    queue: EventQueue = field(default_factory=EventQueue, init=False)
    batcher: Batcher = field(init=False)
    heartbeat: HeartbeatScheduler = field(init=False)
    flusher: TerminationFlusher = field(init=False)

    _state: ClientState = field(default=ClientState.BOOTSTRAPPING, init=False)
    _page_view_sent: bool = field(default=False, init=False)
    _page_view_task: asyncio.Task | None = field(default=None, init=False)
    _stopped: bool = field(default=False, init=False)

    def __post_init__(self):
        self.config.validate()

        if self.session is None:
            self.session = Session(start_time=self.clock())

        if self.transport is None:
            if self.config.debug:
                self.transport = DebugTransport()
            else:
                self.transport = HttpTransport(
                    collector_url=self.config.collector_url,
                    send_timeout_seconds=self.config.send_timeout_seconds,
                    beacon_timeout_seconds=self.config.beacon_timeout_seconds,
                )

        if self.scheduler is None:
            self.scheduler = AsyncioScheduler()

        if self.resolver is None:
            self.resolver = LocationResolver(
                url=self.config.geo_url,
                timeout_seconds=self.config.geo_timeout_seconds,
            )

        if self.termination is None:
            self.termination = TerminationSignal()

        self.batcher = Batcher(
            queue=self.queue,
            transport=self.transport,
            flush_interval_seconds=self.config.batch_interval_seconds,
        )
        self.heartbeat = HeartbeatScheduler(
            queue=self.queue,
            batcher=self.batcher,
            session=self.session,
            page=self.page,
            interval_seconds=self.config.heartbeat_interval_seconds,
            clock=self.clock,
        )
        self.flusher = TerminationFlusher(
            queue=self.queue,
            transport=self.transport,
            session=self.session,
            page=self.page,
            clock=self.clock,
        )
        self.termination.register(self._on_terminate)

    async def start(self, track_page_view: bool = True, bind_process_exit: bool = False) -> None:
        """
        Start the flush and heartbeat schedules.

        The page view is recorded in the background since it waits on the
        geolocation lookup.
        """
        if self._state != ClientState.BOOTSTRAPPING:
            raise PixelError(f"Client cannot start from state {self._state.value}")

        await self.transport.start()
        self.batcher.start(self.scheduler)
        self.heartbeat.start(self.scheduler)

        if bind_process_exit:
            self.termination.bind_process_exit(asyncio.get_running_loop())

        self._state = ClientState.ACTIVE

        if track_page_view:
            self._page_view_task = asyncio.create_task(self.track_page_view())

        logger.info(f"Pixel client started (session={self.session.session_id}, debug={self.config.debug})")

    def track(self, event_type: EventType | str, data: dict[str, Any] | None = None) -> Event | None:
        """
        Record an event for the next flush.

        Returns the event, or None once the session is terminating.
        """
        if self._state in (ClientState.TERMINATING, ClientState.ENDED):
            logger.debug(f"Session ended, ignoring {event_type} event")
            return None

        event = Event.create(event_type, self.session, self.page, data)
        self.queue.enqueue(event)
        return event

    async def track_page_view(self) -> bool:
        """Record the ``visit`` event, enriched with location. Only once."""
        if self._page_view_sent:
            return False

        location = await self.resolver.resolve()
        if self._page_view_sent:
            return False

        data: dict[str, Any] = {**location.to_dict(), "page_title": self.page.title}
        if self.page.viewport:
            data["viewport"] = self.page.viewport

        if self.track(EventType.VISIT, data) is None:
            return False

        self._page_view_sent = True
        logger.debug(f"Page view from {location.city}, {location.country}")
        return True

    async def location(self) -> LocationInfo:
        """Session location (resolved once, then cached)."""
        return await self.resolver.resolve()

    def navigate(self, url: str) -> None:
        """Update the current URL stamped on later events."""
        self.page.url = url

    async def flush(self) -> bool:
        """Flush now, outside the regular schedule."""
        return await self.batcher.flush()

    def terminate(self) -> None:
        """Fire the termination signal (same as the process going away)."""
        self.termination.fire()

    def _on_terminate(self) -> None:
        if self._state == ClientState.ENDED:
            return

        self._state = ClientState.TERMINATING
        self.heartbeat.stop()
        self.batcher.cancel()
        if self._page_view_task is not None and not self._page_view_task.done():
            self._page_view_task.cancel()

        self.flusher.handle()
        self._state = ClientState.ENDED
        logger.info(f"Pixel client terminated (session={self.session.session_id})")

    async def stop(self) -> None:
        """
        Graceful shutdown: cancel every schedule, flush once, close.

        Sends already in flight finish before the last flush and before the
        transport is closed. Unlike termination, no ``session_end`` is
        recorded. After termination, it delivers whatever failed sends put
        back in the queue, then releases resources.
        """
        if self._stopped:
            return
        self._stopped = True

        self.heartbeat.stop()
        self.termination.unbind()

        if self._page_view_task is not None and not self._page_view_task.done():
            self._page_view_task.cancel()
            try:
                await self._page_view_task
            except asyncio.CancelledError:
                pass

        # Let running ticks and sends settle before the last flush
        self.batcher.cancel()
        await self.scheduler.wait_idle()
        await self.batcher.wait_idle()

        if self._state == ClientState.ENDED:
            if self.flusher.pending:
                await asyncio.gather(*self.flusher.pending, return_exceptions=True)
            await self.flusher.flush_remaining()
        else:
            await self.batcher.stop()
            self._state = ClientState.ENDED

        await self.transport.stop()
        logger.info(f"Pixel client stopped. Stats: {self.stats}")

    async def __aenter__(self) -> PixelClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def stats(self) -> dict:
        return {
            **self.batcher.stats,
            "heartbeats": self.heartbeat.beats,
            "location_lookups": self.resolver.lookups,
        }

    def debug_state(self) -> dict[str, Any]:
        """Internal state for inspection. Only available in debug mode."""
        if not self.config.debug:
            raise PixelError("debug_state() requires debug mode")

        location = self.resolver.cached
        return {
            "session_id": self.session.session_id,
            "state": self._state.value,
            "queue": [event.to_dict() for event in self.queue.snapshot()],
            "location": location.to_dict() if location else None,
            "stats": self.stats,
        }
