"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields

from .errors import ConfigError
from .location import DEFAULT_GEO_URL


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _env_optional_float(name: str, default: str) -> float | None:
    value = os.environ.get(name, default)
    if value.lower() in ("", "none", "null"):
        return None
    return float(value)


@dataclass
class PixelConfig:
    """
    Configuration for the telemetry client. Fixed once the client boots.

    Can be set via:
    - Constructor arguments
    - Environment variables (PIXEL_*)
    - Config file (YAML or JSON)
    """
    # Route all sends to the diagnostic console instead of the network
    debug: bool = field(
        default_factory=lambda: _env_bool("PIXEL_DEBUG", "false")
    )

    # Collector endpoint
    collector_url: str = field(
        default_factory=lambda: os.environ.get("PIXEL_COLLECTOR_URL", "")
    )

    # Flush interval (seconds)
    batch_interval_seconds: float = field(
        default_factory=lambda: float(os.environ.get("PIXEL_BATCH_INTERVAL", "5"))
    )

    # Heartbeat interval (seconds)
    heartbeat_interval_seconds: float = field(
        default_factory=lambda: float(os.environ.get("PIXEL_HEARTBEAT_INTERVAL", "30"))
    )

    # Geolocation provider
    geo_url: str = field(
        default_factory=lambda: os.environ.get("PIXEL_GEO_URL", DEFAULT_GEO_URL)
    )
    geo_timeout_seconds: float = field(
        default_factory=lambda: float(os.environ.get("PIXEL_GEO_TIMEOUT", "5"))
    )

    # Normal send budget (None = wait indefinitely)
    send_timeout_seconds: float | None = field(
        default_factory=lambda: _env_optional_float("PIXEL_SEND_TIMEOUT", "10")
    )

    # Termination-time send budget
    beacon_timeout_seconds: float = field(
        default_factory=lambda: float(os.environ.get("PIXEL_BEACON_TIMEOUT", "2"))
    )

    def validate(self) -> None:
        """Raise ConfigError if the client cannot boot with this config."""
        if not self.debug and not self.collector_url:
            raise ConfigError("collector_url is required unless debug is enabled")

        for name in ("batch_interval_seconds", "heartbeat_interval_seconds", "geo_timeout_seconds",
                     "beacon_timeout_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

        if self.send_timeout_seconds is not None and self.send_timeout_seconds <= 0:
            raise ConfigError("send_timeout_seconds must be positive or null")

    @classmethod
    def from_dict(cls, data: dict) -> PixelConfig:
        """Create config from dictionary. Unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str) -> PixelConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> PixelConfig:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
