"""Event primitives emitted by the reconcilers.

Events are fire-and-forget telemetry: a sink must never raise into the caller
and nothing in the reconcilers branches on whether an event was delivered.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

LOG = logging.getLogger(__name__)

NORMAL = "Normal"
WARNING = "Warning"


@dataclass(frozen=True)
class Event:
    """A single event as recorded against the object being reconciled."""

    type: str
    reason: str
    message: str


class EventSink(ABC):
    @abstractmethod
    def emit(self, type: str, reason: str, message: str) -> None:
        """Publish an event of severity ``type`` (Normal or Warning)."""

    def normal(self, reason: str, message: str) -> None:
        self.emit(NORMAL, reason, message)

    def warning(self, reason: str, message: str) -> None:
        self.emit(WARNING, reason, message)


class LoggingEventSink(EventSink):
    """Default sink: every event becomes a log record."""

    def __init__(self, logger: logging.Logger = LOG) -> None:
        self._logger = logger

    def emit(self, type: str, reason: str, message: str) -> None:
        level = logging.WARNING if type == WARNING else logging.INFO
        self._logger.log(level, "event type=%s reason=%s: %s", type, reason, message)
