"""Transports - delivery primitives for event batches."""

from .base import Transport
from .console import DebugTransport
from .http import HttpTransport

__all__ = [
    "Transport",
    "DebugTransport",
    "HttpTransport",
]
