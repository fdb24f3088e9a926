"""Session identity and page context."""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field


_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """Millisecond timestamp plus a 6 character base36 suffix."""
    suffix = "".join(random.choice(_BASE36) for _ in range(6))
    return f"{int(time.time() * 1000)}-{suffix}"


@dataclass(frozen=True, slots=True)
class Session:
    """
    One session: created at bootstrap, never mutated.

    ``start_time`` is a monotonic instant, so durations are immune to
    wall-clock adjustments.
    """
    session_id: str = field(default_factory=generate_session_id)
    start_time: float = field(default_factory=time.monotonic)

    def uptime_ms(self, now: float | None = None) -> int:
        """Milliseconds since the session started."""
        now = time.monotonic() if now is None else now
        return int((now - self.start_time) * 1000)

    def elapsed_seconds(self, now: float | None = None) -> int:
        """Whole seconds since the session started (rounded)."""
        now = time.monotonic() if now is None else now
        return round(now - self.start_time)


@dataclass(slots=True)
class PageContext:
    """
    Client context stamped onto every event.

    The host updates ``url`` when it navigates; everything else is
    captured once at bootstrap.
    """
    url: str = ""
    referrer: str = ""
    user_agent: str = "pixel-telemetry"
    title: str = ""
    viewport: str | None = None
