"""Cancellable delayed calls for the instruction sequencer.

The sequencer only needs `call_later(delay_s, fn) -> handle` with an idempotent
`handle.cancel()`; tests swap in a deterministic scheduler.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Runs each callback on a daemon `threading.Timer`."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        def _run() -> None:
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback failed")

        timer = threading.Timer(max(0.0, float(delay_s)), _run)
        timer.daemon = True
        timer.start()
        return timer


__all__ = ["TimerHandle", "Scheduler", "ThreadingScheduler"]
