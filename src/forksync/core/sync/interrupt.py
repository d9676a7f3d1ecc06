"""
Interrupt handling for cooperative cancellation of sync runs.

Two-stage model:
1. First SIGINT/SIGTERM sets the shared cancel event. Running tasks stop
   at their next phase boundary and queued tasks are recorded as
   interrupted without starting.
2. A second signal force-exits with SystemExit(130).

Usage:
    >>> cancel = threading.Event()
    >>> handler = InterruptHandler(cancel)
    >>> with handler:
    ...     summary = executor.run(plan.tasks, cancel_event=cancel)
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from collections.abc import Callable
from types import TracebackType
from typing import Any

logger = logging.getLogger(__name__)


class InterruptHandler:
    """
    Routes SIGINT/SIGTERM to a ``threading.Event``.

    Signal handlers can only be installed from the main thread; elsewhere
    ``register`` is a no-op and cancellation must be driven directly
    through the event.
    """

    def __init__(self, cancel_event: threading.Event | None = None) -> None:
        self.cancel_event = cancel_event or threading.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._original_sigint: Any = None
        self._original_sigterm: Any = None
        self._registered = False

    @property
    def interrupted(self) -> bool:
        return self.cancel_event.is_set()

    def register(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread; signal handlers not installed")
            return
        self._original_sigint = signal.signal(signal.SIGINT, self._handle_signal)
        self._original_sigterm = signal.signal(signal.SIGTERM, self._handle_signal)
        self._registered = True

    def unregister(self) -> None:
        if not self._registered:
            return
        signal.signal(signal.SIGINT, self._original_sigint)
        signal.signal(signal.SIGTERM, self._original_sigterm)
        self._registered = False

    def __enter__(self) -> InterruptHandler:
        self.register()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unregister()

    def on_interrupt(self, callback: Callable[[], None]) -> None:
        """Register a callback run once on the first interrupt."""
        self._callbacks.append(callback)

    def trigger(self) -> None:
        """Request cancellation as if a signal had arrived."""
        if self.cancel_event.is_set():
            return
        self.cancel_event.set()
        for callback in self._callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Interrupt callback failed")

    def _handle_signal(self, signum: int, frame: object) -> None:
        if self.cancel_event.is_set():
            sys.stderr.write("\n[Force exiting...]\n")
            sys.stderr.flush()
            raise SystemExit(130)

        sys.stderr.write("\n[Interrupt received. Finishing in-flight phases...]\n")
        sys.stderr.flush()
        self.trigger()
