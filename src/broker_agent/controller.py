"""Work queue driving the broker and trigger reconcilers."""

from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Event, Lock, Thread
from typing import Dict, List, Optional

from eventing_api.errors import NotFoundError, StoreError
from eventing_api.objects import ObjectKey, group_kind
from eventing_api.store import ObjectStore

from mtbroker import BROKER_KIND, TRIGGER_KIND, Reconcilers
from mtbroker.context import ReconcileContext
from mtbroker.errors import ReconcileCancelled, ReconcileError

LOG = logging.getLogger(__name__)


class Controller(Thread):
    """De-duplicating queue of broker and trigger keys.

    A key is never queued twice; a key that fails with a retryable error is
    requeued until it has failed ``max_retries`` times in a row.  Changes to
    any object are routed through :meth:`notify`, which also enqueues every
    key that read the object during its last pass.
    """

    def __init__(
        self,
        reconcilers: Reconcilers,
        store: ObjectStore,
        stop_event: Event,
        max_retries: int = 5,
        timeout: Optional[float] = None,
        interval: float = 1.0,
    ) -> None:
        super().__init__(daemon=True)
        self._reconcilers = reconcilers
        self._store = store
        self._stop_event = stop_event
        self._max_retries = max_retries
        self._timeout = timeout
        self._interval = interval
        self._lock = Lock()
        self._queue: "OrderedDict[ObjectKey, None]" = OrderedDict()
        self._failures: Dict[ObjectKey, int] = {}
        self._wakeup = Event()

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------
    def enqueue(self, key: ObjectKey) -> bool:
        if key.group_kind not in (BROKER_KIND, TRIGGER_KIND):
            raise ValueError(f"no reconciler for {key.group_kind}")
        with self._lock:
            if key in self._queue:
                return False
            self._queue[key] = None
        self._wakeup.set()
        return True

    def pending(self) -> List[ObjectKey]:
        with self._lock:
            return list(self._queue)

    def notify(self, key: ObjectKey) -> None:
        """``key`` was created, changed or removed."""

        if key.group_kind in (BROKER_KIND, TRIGGER_KIND):
            self.enqueue(key)
        if key.group_kind == BROKER_KIND:
            self._enqueue_triggers_of(key)
        else:
            self._enqueue_owner_of(key)
        for dependent in self._reconcilers.tracker.dependents_of(key):
            self.enqueue(dependent)

    def _enqueue_owner_of(self, key: ObjectKey) -> None:
        """Route a change to an owned child (a Subscription, a trigger channel) to its controller."""

        try:
            obj = self._store.get(key.group_kind, key.namespace, key.name)
        except NotFoundError:
            return
        except StoreError:
            LOG.exception("failed to read %s to find its owner", key)
            return
        ref = obj.metadata.controller_ref()
        if ref is None:
            return
        owner = ObjectKey(group_kind(ref.api_version, ref.kind), key.namespace, ref.name)
        if owner.group_kind in (BROKER_KIND, TRIGGER_KIND):
            self.enqueue(owner)

    def _enqueue_triggers_of(self, broker: ObjectKey) -> None:
        try:
            triggers = self._store.list(TRIGGER_KIND, broker.namespace)
        except StoreError:
            LOG.exception("failed to list triggers of broker %s/%s", broker.namespace, broker.name)
            return
        for trigger in triggers:
            if trigger.spec.broker == broker.name:
                self.enqueue(trigger.key)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def process_pending(self) -> int:
        """Reconcile every key queued when the call started; return how many ran."""

        with self._lock:
            batch = list(self._queue)
            self._queue.clear()

        processed = 0
        for index, key in enumerate(batch):
            if self._stop_event.is_set():
                with self._lock:
                    for remaining in batch[index:]:
                        self._queue.setdefault(remaining, None)
                break
            self._process(key)
            processed += 1
        return processed

    def _process(self, key: ObjectKey) -> None:
        ctx = ReconcileContext(stop_event=self._stop_event, timeout=self._timeout)
        try:
            if key.group_kind == BROKER_KIND:
                try:
                    self._reconcilers.broker.reconcile(key.namespace, key.name, ctx)
                finally:
                    # Triggers mirror the broker's readiness, whatever the outcome.
                    self._enqueue_triggers_of(key)
            else:
                self._reconcilers.trigger.reconcile(key.namespace, key.name, ctx)
        except ReconcileCancelled as exc:
            LOG.info("reconciliation of %s cancelled: %s", key, exc)
            self.enqueue(key)
        except ReconcileError as exc:
            self._handle_error(key, exc, exc.retryable)
        except Exception as exc:
            LOG.exception("unexpected failure reconciling %s", key)
            self._handle_error(key, exc, True)
        else:
            self._failures.pop(key, None)

    def _handle_error(self, key: ObjectKey, exc: Exception, retryable: bool) -> None:
        if not retryable:
            LOG.warning("dropping %s after non-retryable error: %s", key, exc)
            self._failures.pop(key, None)
            return
        attempts = self._failures.get(key, 0) + 1
        if attempts >= self._max_retries:
            LOG.error("giving up on %s after %d attempts: %s", key, attempts, exc)
            self._failures.pop(key, None)
            return
        self._failures[key] = attempts
        LOG.info("requeueing %s (attempt %d/%d): %s", key, attempts, self._max_retries, exc)
        self.enqueue(key)

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.process_pending()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("controller loop encountered an error")
            self._wakeup.wait(self._interval)
            self._wakeup.clear()
