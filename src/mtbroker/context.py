"""Cancellation and deadline handling for a single reconciliation pass."""

from __future__ import annotations

import time
from threading import Event
from typing import Optional

from .errors import ReconcileCancelled


class ReconcileContext:
    """Checked before every external call of a pass.

    ``stop_event`` is usually the process-wide shutdown event; ``timeout``
    bounds a single pass.
    """

    def __init__(self, stop_event: Optional[Event] = None, timeout: Optional[float] = None) -> None:
        self._stop_event = stop_event or Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._stop_event.set()

    @property
    def cancelled(self) -> bool:
        if self._stop_event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        if self._stop_event.is_set():
            raise ReconcileCancelled("reconciliation cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise ReconcileCancelled("reconciliation deadline exceeded")


def background() -> ReconcileContext:
    """A context that is never cancelled."""

    return ReconcileContext()
