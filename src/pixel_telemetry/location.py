"""Single-flight, session-cached geolocation enrichment."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from .errors import LocationLookupError


logger = logging.getLogger(__name__)

DEFAULT_GEO_URL = "https://ipapi.co/json/"
UNKNOWN = "Unknown"
HIDDEN_IP = "Hidden"


@dataclass(frozen=True, slots=True)
class LocationInfo:
    """Coarse location of the session. Every field falls back to Unknown."""
    country: str = UNKNOWN
    city: str = UNKNOWN
    region: str = UNKNOWN
    ip: str = HIDDEN_IP

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> LocationInfo:
        """Map an ipapi-style response; the address is truncated."""
        ip = data.get("ip")
        return cls(
            country=data.get("country_name") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
            region=data.get("region") or UNKNOWN,
            ip=f"{ip[:8]}..." if ip else HIDDEN_IP,
        )

    @property
    def is_unknown(self) -> bool:
        return self.country == UNKNOWN and self.city == UNKNOWN and self.region == UNKNOWN

    def to_dict(self) -> dict[str, str]:
        return {
            "country": self.country,
            "city": self.city,
            "region": self.region,
            "ip": self.ip,
        }


FALLBACK_LOCATION = LocationInfo()


@dataclass
class LocationResolver:
    """
    Resolves the session location at most once.

    The first caller starts the lookup; callers arriving while it is in
    flight await the same task. Whatever comes out, the parsed result or
    the fallback after a failure or timeout, is cached for the rest of the
    session and never retried.

    Usage:
        resolver = LocationResolver(timeout_seconds=5.0)
        loc = await resolver.resolve()
    """
    url: str = DEFAULT_GEO_URL
    timeout_seconds: float = 5.0

    # Replaces the HTTP lookup entirely (returns the provider's raw dict)
    lookup: Callable[[], Awaitable[dict[str, Any]]] | None = None

    # Shared client; a short-lived one is opened per lookup otherwise
    http_client: httpx.AsyncClient | None = None

    _cached: LocationInfo | None = field(default=None, init=False)
    _pending: asyncio.Task | None = field(default=None, init=False)
    _lookups: int = field(default=0, init=False)

    async def resolve(self) -> LocationInfo:
        """Return the cached location, resolving it on first use."""
        if self._cached is not None:
            return self._cached

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._resolve_once())

        # Shielded so one cancelled caller does not cancel the shared lookup
        return await asyncio.shield(self._pending)

    async def _resolve_once(self) -> LocationInfo:
        self._lookups += 1
        fetch = self.lookup or self._http_lookup

        try:
            raw = await asyncio.wait_for(fetch(), timeout=self.timeout_seconds)
            if not isinstance(raw, dict):
                raise LocationLookupError(f"Unexpected geolocation payload: {type(raw).__name__}")
            info = LocationInfo.from_provider(raw)
        except asyncio.TimeoutError:
            logger.warning(f"Geolocation lookup timed out after {self.timeout_seconds}s")
            info = FALLBACK_LOCATION
        except Exception as e:
            logger.warning(f"Geolocation lookup failed: {e}")
            info = FALLBACK_LOCATION

        self._cached = info
        return info

    async def _http_lookup(self) -> dict[str, Any]:
        if self.http_client is not None:
            response = await self.http_client.get(self.url)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(self.url)

        if not response.is_success:
            raise LocationLookupError(f"HTTP {response.status_code}")
        return response.json()

    @property
    def cached(self) -> LocationInfo | None:
        """The resolved location, or None before the first resolution."""
        return self._cached

    @property
    def lookups(self) -> int:
        """Number of outbound lookups issued (0 or 1)."""
        return self._lookups
