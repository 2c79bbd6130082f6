"""Contracts the broker reconcilers consume from the outside world.

The reconciliation core does not own the object store, the event recorder or
the knowledge of which foreign kinds are addressable.  This package defines
those seams together with small reference implementations (an in-memory store
and a logging event sink) so the core can be exercised end-to-end in tests and
lab runs without a cluster.
"""

from .duck import DuckRegistry  # noqa: F401
from .errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError  # noqa: F401
from .events import Event, EventSink, LoggingEventSink  # noqa: F401
from .store import InMemoryObjectStore, ObjectStore  # noqa: F401

__all__ = [
    "AlreadyExistsError",
    "ConflictError",
    "DuckRegistry",
    "Event",
    "EventSink",
    "InMemoryObjectStore",
    "LoggingEventSink",
    "NotFoundError",
    "ObjectStore",
    "StoreError",
]
