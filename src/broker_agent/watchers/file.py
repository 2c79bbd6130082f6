"""File-based manifest watcher."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Event, Thread
from typing import Any, Dict, Mapping

from eventing_api.errors import NotFoundError
from eventing_api.objects import ObjectKey
from eventing_api.store import InMemoryObjectStore

from ..controller import Controller
from .utils import load_object, object_key

LOG = logging.getLogger(__name__)


def _extract_state(payload: dict) -> Dict[ObjectKey, Mapping[str, Any]]:
    objects = payload.get("objects")
    if objects is None:
        raise ValueError("manifest file missing 'objects' key")
    if not isinstance(objects, list):
        raise ValueError("'objects' must be a list")

    state: Dict[ObjectKey, Mapping[str, Any]] = {}
    for raw in objects:
        if not isinstance(raw, dict):
            raise ValueError("manifest objects must be mappings")
        state[object_key(raw)] = raw
    return state


class FileManifestWatcher(Thread):
    """Poll a JSON manifest file and mirror it into the store.

    Objects that appear or change are upserted and reported to the controller.
    Objects that disappear are deleted, or marked for deletion while they still
    carry finalizers.  Status written by the reconcilers survives a manifest
    entry that carries no ``status`` of its own.
    """

    def __init__(
        self,
        store: InMemoryObjectStore,
        controller: Controller,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True)
        self._store = store
        self._controller = controller
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._state: Dict[ObjectKey, Mapping[str, Any]] = {}

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("file watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> None:
        if not self._path.exists():
            LOG.debug("manifest file %s does not exist yet", self._path)
            return

        try:
            payload = json.loads(self._path.read_text())
        except json.JSONDecodeError as exc:
            LOG.warning("failed to parse manifest file %s: %s", self._path, exc)
            return

        try:
            desired = _extract_state(payload)
            objects = {key: load_object(raw) for key, raw in desired.items()
                       if self._state.get(key) != raw}
        except ValueError as exc:
            LOG.warning("invalid manifest file %s: %s", self._path, exc)
            return

        for key, obj in objects.items():
            LOG.debug("object %s updated", key)
            self._store.upsert(obj, keep_status="status" not in desired[key])
            self._controller.notify(key)

        for key in set(self._state) - set(desired):
            LOG.debug("object %s removed", key)
            self._remove(key)
            self._controller.notify(key)

        self._state = desired

    def _remove(self, key: ObjectKey) -> None:
        try:
            current = self._store.get(key.group_kind, key.namespace, key.name)
        except NotFoundError:
            return
        if current.metadata.finalizers:
            if not current.metadata.deletion_timestamp:
                current.metadata.deletion_timestamp = datetime.now(timezone.utc).isoformat()
                self._store.upsert(current, keep_status=True)
            return
        try:
            self._store.delete(key.group_kind, key.namespace, key.name)
        except NotFoundError:
            LOG.debug("object %s already gone", key)
