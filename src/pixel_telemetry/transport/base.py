"""Base transport interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..events import Event


class Transport(ABC):
    """
    Abstract base class for transports.

    A transport is stateless with respect to the queue: it receives a batch,
    tries to deliver it once, and reports failure by raising. Retrying is
    the batcher's job.
    """

    @abstractmethod
    async def send(self, events: list[Event]) -> None:
        """
        Deliver a batch through the normal request/response path.

        Raises DeliveryError (or any other exception) on failure.
        """
        ...

    def beacon(self, events: list[Event]) -> bool:
        """
        Termination-safe one-way delivery.

        Must not depend on the event loop, which may already be going away.
        Returns True if the payload was accepted for delivery; the default
        returns False, meaning the primitive is unavailable.
        """
        return False

    async def start(self) -> None:
        """Initialize the transport (called on startup)."""
        pass

    async def stop(self) -> None:
        """Release resources (called on shutdown)."""
        pass
