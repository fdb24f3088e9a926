"""Telemetry event types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from .session import PageContext, Session


class EventType(str, Enum):
    """Event types emitted by the core and the standard probes."""
    VISIT = "visit"
    CLICK = "click"
    SCROLL = "scroll"
    HEARTBEAT = "heartbeat"
    SESSION_END = "session_end"


@dataclass(frozen=True, slots=True)
class Event:
    """
    A single recorded occurrence.

    Immutable once created: ``data`` is a read-only view over a private copy
    of the payload. Nested values are not copied. ``type`` is usually an
    ``EventType`` value but custom probes may use any string.
    """
    type: str
    data: Mapping[str, Any]
    url: str
    referrer: str
    timestamp: datetime
    session_id: str
    user_agent: str

    @classmethod
    def create(
        cls,
        event_type: EventType | str,
        session: Session,
        page: PageContext,
        data: dict[str, Any] | None = None,
    ) -> Event:
        """Factory stamping the current page context and UTC time."""
        if isinstance(event_type, EventType):
            event_type = event_type.value

        return cls(
            type=event_type,
            data=MappingProxyType(dict(data or {})),
            url=page.url,
            referrer=page.referrer,
            timestamp=datetime.now(timezone.utc),
            session_id=session.session_id,
            user_agent=page.user_agent,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the collector's wire form."""
        return {
            "type": self.type,
            "data": dict(self.data),
            "url": self.url,
            "referrer": self.referrer,
            "timestamp": self.timestamp.isoformat(),
            "sessionId": self.session_id,
            "userAgent": self.user_agent,
        }


def batch_payload(events: list[Event]) -> dict[str, Any]:
    """Wrap events in the ``{"batch": [...]}`` envelope."""
    return {"batch": [event.to_dict() for event in events]}
