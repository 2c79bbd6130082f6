"""Registry of non-owned objects the reconcilers read.

When a referenced object (a subscriber, a dependency, a trigger channel)
changes, every key that read it during its last pass must be reconciled
again.  The tracker only records that relation; the scheduler asks for
:meth:`Tracker.dependents_of` and decides how to enqueue.
"""

from __future__ import annotations

from threading import Lock
from typing import Dict, Set

from eventing_api.objects import ObjectKey


class Tracker:
    """Guarded mapping ``referenced key -> dependent keys``.

    Safe for concurrent use by reconciliations of different keys.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._dependents: Dict[ObjectKey, Set[ObjectKey]] = {}

    def track(self, reference: ObjectKey, dependent: ObjectKey) -> ObjectKey:
        """Record that ``dependent`` reads ``reference`` and return ``reference``."""

        with self._lock:
            self._dependents.setdefault(reference, set()).add(dependent)
        return reference

    def untrack(self, dependent: ObjectKey) -> None:
        """Forget every reference held by ``dependent`` (e.g. once it is deleted)."""

        with self._lock:
            for reference in list(self._dependents):
                keys = self._dependents[reference]
                keys.discard(dependent)
                if not keys:
                    del self._dependents[reference]

    def dependents_of(self, reference: ObjectKey) -> Set[ObjectKey]:
        with self._lock:
            return set(self._dependents.get(reference, ()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._dependents)
