"""Embeddable telemetry client - batched, retried, best-effort event delivery."""

from .client import ClientState, PixelClient
from .config import PixelConfig
from .errors import ConfigError, DeliveryError, LocationLookupError, PixelError
from .events import Event, EventType
from .location import LocationInfo, LocationResolver
from .queue import EventQueue
from .session import PageContext, Session

__all__ = [
    "ClientState",
    "PixelClient",
    "PixelConfig",
    "PixelError",
    "ConfigError",
    "DeliveryError",
    "LocationLookupError",
    "Event",
    "EventType",
    "LocationInfo",
    "LocationResolver",
    "EventQueue",
    "PageContext",
    "Session",
]
