"""Shared fixtures for telemetry client tests."""

import pytest

from pixel_telemetry.errors import DeliveryError
from pixel_telemetry.events import Event, EventType
from pixel_telemetry.queue import EventQueue
from pixel_telemetry.scheduler import VirtualScheduler
from pixel_telemetry.session import PageContext, Session
from pixel_telemetry.transport.base import Transport


class RecordingTransport(Transport):
    """
    In-memory transport.

    Fails the first ``failures`` sends with a 503, then succeeds. The beacon
    can be switched off to exercise the fallback path.
    """

    def __init__(self, failures: int = 0, beacon_supported: bool = True):
        self.failures = failures
        self.beacon_supported = beacon_supported
        self.attempts = 0
        self.sent: list[list[Event]] = []
        self.beacons: list[list[Event]] = []

    async def send(self, events):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise DeliveryError("HTTP 503", status_code=503)
        self.sent.append(list(events))

    def beacon(self, events):
        if not self.beacon_supported:
            return False
        self.beacons.append(list(events))
        return True


# =============================================================================
# Session Fixtures
# =============================================================================

@pytest.fixture
def session() -> Session:
    return Session(session_id="1700000000000-abc123", start_time=0.0)


@pytest.fixture
def page() -> PageContext:
    return PageContext(
        url="https://example.com/pricing",
        referrer="https://search.example/",
        user_agent="test-agent",
        title="Pricing",
    )


@pytest.fixture
def make_event(session, page):
    """Factory for events stamped with the test session."""
    def factory(event_type=EventType.CLICK, **data) -> Event:
        return Event.create(event_type, session, page, data)
    return factory


@pytest.fixture
def queue() -> EventQueue:
    return EventQueue()


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


# =============================================================================
# Transport Fixtures
# =============================================================================

@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def transport_factory():
    """Build a RecordingTransport with scripted failures."""
    return RecordingTransport
