"""One-shot lifecycle termination signal."""

from __future__ import annotations

import asyncio
import atexit
import logging
import signal
from typing import Callable, Iterable


logger = logging.getLogger(__name__)

TerminationHandler = Callable[[], None]


class TerminationSignal:
    """
    Fires registered handlers exactly once when the session ends.

    Handlers run synchronously, in registration order, and must finish
    quickly: the process may be torn down right after. A failing handler
    is logged and does not prevent the others from running. The signal
    cannot be cancelled once fired.

    Usage:
        termination = TerminationSignal()
        termination.register(flusher.handle)
        termination.bind_process_exit(asyncio.get_running_loop())
    """

    def __init__(self) -> None:
        self._handlers: list[TerminationHandler] = []
        self._fired = False
        self._atexit_bound = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._signals: list[signal.Signals] = []

    def register(self, handler: TerminationHandler) -> None:
        self._handlers.append(handler)

    def fire(self) -> bool:
        """Run the handlers. Returns False if the signal had already fired."""
        if self._fired:
            return False
        self._fired = True

        for handler in self._handlers:
            try:
                handler()
            except Exception as e:
                logger.error(f"Termination handler {handler!r} failed: {e}")
        return True

    @property
    def fired(self) -> bool:
        return self._fired

    def bind_process_exit(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        signals: Iterable[signal.Signals] = (signal.SIGTERM, signal.SIGINT),
    ) -> None:
        """
        Fire on interpreter exit and, when a loop is given, on OS signals.

        Signal handlers go through the loop so they run between callbacks
        rather than in the middle of one.
        """
        if not self._atexit_bound:
            atexit.register(self.fire)
            self._atexit_bound = True

        if loop is None:
            return

        self._loop = loop
        for sig in signals:
            try:
                loop.add_signal_handler(sig, self.fire)
            except (NotImplementedError, RuntimeError) as e:
                # add_signal_handler is unavailable on Windows and off the main thread
                logger.debug(f"Cannot bind {sig!r}: {e}")
                continue
            self._signals.append(sig)

    def unbind(self) -> None:
        """Remove the exit and signal bindings (for a graceful stop)."""
        if self._atexit_bound:
            atexit.unregister(self.fire)
            self._atexit_bound = False

        if self._loop is not None and not self._loop.is_closed():
            for sig in self._signals:
                self._loop.remove_signal_handler(sig)
        self._signals = []
        self._loop = None
