"""Object store contract consumed by the reconcilers, plus an in-memory backend.

The in-memory store mimics the semantics the reconcilers rely on: copies on
read, ``resourceVersion`` optimistic concurrency, generation bumps on spec
changes and separate status writes.  It also records every mutating action and
can be told to fail a verb for a kind, which is how the unit tests exercise
error paths.
"""

from __future__ import annotations

import copy
import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Set, Tuple

from .errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from .objects import ObjectKey, StoredObject

LOG = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Declarative object store (get/list/create/update/delete/patch)."""

    @abstractmethod
    def get(self, group_kind: str, namespace: str, name: str) -> StoredObject:
        """Return a copy of the object or raise :class:`NotFoundError`."""

    @abstractmethod
    def list(
        self,
        group_kind: str,
        namespace: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> List[StoredObject]:
        """Return copies of all objects of ``group_kind`` matching the filters."""

    @abstractmethod
    def create(self, obj: StoredObject) -> StoredObject:
        """Persist a new object and return the stored copy."""

    @abstractmethod
    def update(self, obj: StoredObject) -> StoredObject:
        """Replace metadata and spec; ``resourceVersion`` must be current."""

    @abstractmethod
    def update_status(self, obj: StoredObject) -> StoredObject:
        """Replace only the status; ``resourceVersion`` must be current."""

    @abstractmethod
    def delete(self, group_kind: str, namespace: str, name: str) -> None:
        """Remove the object or raise :class:`NotFoundError`."""

    @abstractmethod
    def patch(self, group_kind: str, namespace: str, name: str, patch: Mapping[str, Any]) -> StoredObject:
        """Apply a metadata merge patch (finalizers, optionally guarded by resourceVersion)."""


class Action(NamedTuple):
    verb: str
    group_kind: str
    namespace: str
    name: str


class InMemoryObjectStore(ObjectStore):
    """Thread-safe dictionary backed store."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._objects: Dict[ObjectKey, StoredObject] = {}
        self._versions = itertools.count(1)
        self._failures: Dict[Tuple[str, str], str] = {}
        self.actions: List[Action] = []

    # ------------------------------------------------------------------
    # Test / lab helpers
    # ------------------------------------------------------------------
    def induce_failure(self, verb: str, group_kind: str, message: Optional[str] = None) -> None:
        """Make every ``verb`` on ``group_kind`` raise a :class:`StoreError`."""

        self._failures[(verb, group_kind)] = message or f"inducing failure for {verb} {group_kind}"

    def clear_failures(self) -> None:
        self._failures.clear()

    def seed(self, *objects: StoredObject) -> None:
        """Insert objects as-is (no action recorded, uid/version filled in)."""

        with self._lock:
            for obj in objects:
                stored = copy.deepcopy(obj)
                self._stamp(stored, new=not stored.metadata.resource_version)
                self._objects[stored.key] = stored

    def upsert(self, obj: StoredObject, keep_status: bool = False) -> StoredObject:
        """Create or overwrite ``obj`` keeping identity; used by manifest watchers.

        Finalizers and owner references the incoming object does not carry are
        kept from the stored copy, as is the status when ``keep_status`` is set.
        """

        with self._lock:
            current = self._objects.get(obj.key)
            stored = copy.deepcopy(obj)
            if current is None:
                self._stamp(stored, new=True)
            else:
                stored.metadata.uid = current.metadata.uid
                if not stored.metadata.finalizers:
                    stored.metadata.finalizers = list(current.metadata.finalizers)
                if not stored.metadata.owner_references:
                    stored.metadata.owner_references = list(current.metadata.owner_references)
                if keep_status:
                    _copy_status(current, stored)
                stored.metadata.generation = current.metadata.generation
                if stored.spec_view() != current.spec_view():
                    stored.metadata.generation += 1
                stored.metadata.resource_version = str(next(self._versions))
            self._objects[stored.key] = stored
            return copy.deepcopy(stored)

    def writes(self) -> List[Action]:
        return list(self.actions)

    def _stamp(self, obj: StoredObject, new: bool) -> None:
        if new:
            if not obj.metadata.uid:
                obj.metadata.uid = str(uuid.uuid4())
            if not obj.metadata.generation:
                obj.metadata.generation = 1
        obj.metadata.resource_version = str(next(self._versions))

    def _check_failure(self, verb: str, group_kind: str) -> None:
        message = self._failures.get((verb, group_kind))
        if message is not None:
            raise StoreError(message)

    def _record(self, verb: str, key: ObjectKey) -> None:
        self.actions.append(Action(verb, key.group_kind, key.namespace, key.name))

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------
    def get(self, group_kind: str, namespace: str, name: str) -> StoredObject:
        key = ObjectKey(group_kind, namespace, name)
        with self._lock:
            self._check_failure("get", group_kind)
            obj = self._objects.get(key)
            if obj is None:
                raise NotFoundError(group_kind, name)
            return copy.deepcopy(obj)

    def list(self, group_kind, namespace=None, labels=None):
        with self._lock:
            self._check_failure("list", group_kind)
            matches = []
            for key, obj in self._objects.items():
                if key.group_kind != group_kind:
                    continue
                if namespace is not None and key.namespace != namespace:
                    continue
                if labels and any(obj.metadata.labels.get(k) != v for k, v in labels.items()):
                    continue
                matches.append(copy.deepcopy(obj))
            return sorted(matches, key=lambda o: o.key)

    def create(self, obj):
        with self._lock:
            self._record("create", obj.key)
            self._check_failure("create", obj.group_kind)
            if obj.key in self._objects:
                raise AlreadyExistsError(obj.group_kind, obj.metadata.name)
            stored = copy.deepcopy(obj)
            stored.metadata.generation = 0
            self._stamp(stored, new=True)
            self._objects[stored.key] = stored
            LOG.debug("created %s", stored.key)
            return copy.deepcopy(stored)

    def _current_for_write(self, obj: StoredObject) -> StoredObject:
        current = self._objects.get(obj.key)
        if current is None:
            raise NotFoundError(obj.group_kind, obj.metadata.name)
        if obj.metadata.resource_version != current.metadata.resource_version:
            raise ConflictError(obj.group_kind, obj.metadata.name)
        return current

    def update(self, obj):
        with self._lock:
            self._record("update", obj.key)
            self._check_failure("update", obj.group_kind)
            current = self._current_for_write(obj)
            stored = copy.deepcopy(obj)
            if hasattr(current, "status"):
                _copy_status(current, stored)
            stored.metadata.uid = current.metadata.uid
            stored.metadata.generation = current.metadata.generation
            if stored.spec_view() != current.spec_view():
                stored.metadata.generation += 1
            stored.metadata.resource_version = str(next(self._versions))
            self._objects[stored.key] = stored
            return copy.deepcopy(stored)

    def update_status(self, obj):
        with self._lock:
            self._record("update_status", obj.key)
            self._check_failure("update_status", obj.group_kind)
            current = self._current_for_write(obj)
            stored = copy.deepcopy(current)
            _copy_status(obj, stored)
            stored.metadata.resource_version = str(next(self._versions))
            self._objects[stored.key] = stored
            return copy.deepcopy(stored)

    def delete(self, group_kind, namespace, name):
        key = ObjectKey(group_kind, namespace, name)
        with self._lock:
            self._record("delete", key)
            self._check_failure("delete", group_kind)
            if key not in self._objects:
                raise NotFoundError(group_kind, name)
            del self._objects[key]
            LOG.debug("deleted %s", key)

    def patch(self, group_kind, namespace, name, patch):
        key = ObjectKey(group_kind, namespace, name)
        with self._lock:
            self._record("patch", key)
            self._check_failure("patch", group_kind)
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(group_kind, name)
            meta = patch.get("metadata", {})
            expected = meta.get("resourceVersion")
            if expected and expected != current.metadata.resource_version:
                raise ConflictError(group_kind, name)
            unsupported: Set[str] = set(meta) - {"finalizers", "resourceVersion"}
            if unsupported:
                raise StoreError(f"unsupported patch fields: {sorted(unsupported)}")
            stored = copy.deepcopy(current)
            if "finalizers" in meta:
                stored.metadata.finalizers = list(meta["finalizers"] or [])
            stored.metadata.resource_version = str(next(self._versions))
            if stored.metadata.deletion_timestamp and not stored.metadata.finalizers:
                del self._objects[key]
                LOG.debug("finalized %s", key)
            else:
                self._objects[key] = stored
            return copy.deepcopy(stored)


def _copy_status(source: StoredObject, target: StoredObject) -> None:
    if hasattr(source, "status") and not hasattr(source, "body"):
        target.status = copy.deepcopy(source.status)
    elif hasattr(source, "body"):
        status = source.body.get("status")
        if status is None:
            target.body.pop("status", None)
        else:
            target.body["status"] = copy.deepcopy(status)
