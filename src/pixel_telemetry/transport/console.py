"""Diagnostic transport for debug mode."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field

from colorama import Fore, Style

from ..events import Event
from .base import Transport


@dataclass
class DebugTransport(Transport):
    """
    Transport that prints batches instead of sending them.

    Every batch is also kept in ``batches`` (and termination-time batches
    in ``beacons``) so tests and developers can inspect what would have
    gone out. Sends never fail.
    """
    # Output destination
    stream: str = "stdout"  # stdout | stderr

    # Disable ANSI colors (e.g. when piping)
    color: bool = True

    # Prefix for each line
    prefix: str = "[Pixel] "

    batches: list[list[Event]] = field(default_factory=list, init=False)
    beacons: list[list[Event]] = field(default_factory=list, init=False)

    async def send(self, events: list[Event]) -> None:
        self.batches.append(list(events))
        self._print_table(events, title="batch")

    def beacon(self, events: list[Event]) -> bool:
        self.beacons.append(list(events))
        self._print_table(events, title="beacon")
        return True

    def _colorize(self, text: str, color: str) -> str:
        if self.color:
            return f"{color}{text}{Style.RESET_ALL}"
        return text

    def _print_table(self, events: list[Event], title: str) -> None:
        out = sys.stdout if self.stream == "stdout" else sys.stderr

        header = self._colorize(f"{title} ({len(events)} events)", Style.BRIGHT)
        print(f"{self.prefix}{header}", file=out)

        for i, event in enumerate(events):
            print(
                f"{self.prefix}  {i:>3} "
                f"{event.timestamp.isoformat()} "
                f"{self._colorize(f'{event.type:<12}', Fore.CYAN)} "
                f"{event.url} "
                f"{self._colorize(json.dumps(dict(event.data), default=str), Style.DIM)}",
                file=out,
            )
