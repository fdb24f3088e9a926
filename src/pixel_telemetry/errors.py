"""Exceptions raised inside the telemetry client."""

from __future__ import annotations


class PixelError(Exception):
    """Base exception for telemetry client errors."""
    pass


class ConfigError(PixelError):
    """Invalid client configuration."""
    pass


class DeliveryError(PixelError):
    """A batch could not be delivered to the collector."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LocationLookupError(PixelError):
    """The geolocation provider returned an unusable response."""
    pass
