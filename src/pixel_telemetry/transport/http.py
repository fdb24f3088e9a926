"""HTTP transport to the collector endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..errors import DeliveryError
from ..events import Event, batch_payload
from .base import Transport


logger = logging.getLogger(__name__)


@dataclass
class HttpTransport(Transport):
    """
    Posts ``{"batch": [...]}`` as JSON to the collector.

    Any 2xx response is success. Everything else, including connection
    errors and timeouts, raises DeliveryError.

    Config:
        collector_url: Collector endpoint
        send_timeout_seconds: Budget for a normal send (None = no timeout)
        beacon_timeout_seconds: Budget for the termination-time send
        http_transport: Optional httpx transport (e.g. httpx.MockTransport)
    """
    collector_url: str
    send_timeout_seconds: float | None = 10.0
    beacon_timeout_seconds: float = 2.0
    headers: dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})
    http_transport: Any = None

    _client: httpx.AsyncClient | None = field(default=None, init=False)

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.send_timeout_seconds,
                headers=self.headers,
                transport=self.http_transport,
            )

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, events: list[Event]) -> None:
        if self._client is None:
            await self.start()

        try:
            response = await self._client.post(self.collector_url, json=batch_payload(events))
        except httpx.HTTPError as e:
            raise DeliveryError(f"Collector request failed: {e}") from e

        if not response.is_success:
            raise DeliveryError(f"HTTP {response.status_code}", status_code=response.status_code)

        logger.debug(f"Sent {len(events)} events")

    def beacon(self, events: list[Event]) -> bool:
        # Blocking on purpose: termination hooks may run after the loop is gone
        try:
            with httpx.Client(
                timeout=self.beacon_timeout_seconds,
                headers=self.headers,
                transport=self.http_transport,
            ) as client:
                client.post(self.collector_url, json=batch_payload(events))
        except httpx.HTTPError as e:
            logger.warning(f"Beacon delivery failed: {e}")
            return False

        logger.debug(f"Beaconed {len(events)} events")
        return True
