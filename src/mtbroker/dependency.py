"""Propagate the readiness of a trigger's declared dependency."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from eventing_api.duck import DuckRegistry
from eventing_api.errors import NotFoundError, StoreError
from eventing_api.objects import FALSE, TRUE, UNKNOWN, ObjectKey, ObjectReference
from eventing_api.store import ObjectStore

from .context import ReconcileContext, background
from .resources import Trigger
from .tracker import Tracker

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyReadiness:
    """Outcome of one dependency check, ready to be copied into DependencyReady.

    ``error`` is set when the pass should report a failure on top of the
    condition.
    """

    status: str
    reason: str = ""
    message: str = ""
    error: Optional[str] = None
    tracked: Optional[ObjectKey] = None


READY = DependencyReadiness(TRUE)


def parse_dependency_annotation(raw: str) -> ObjectReference:
    """Parse ``{"kind": ..., "name": ..., "apiVersion": ...}``."""

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("dependency annotation must be a JSON object")
    missing = [k for k in ("kind", "name", "apiVersion") if not data.get(k)]
    if missing:
        raise ValueError(f"dependency annotation missing {', '.join(missing)}")
    return ObjectReference(
        api_version=str(data["apiVersion"]),
        kind=str(data["kind"]),
        name=str(data["name"]),
    )


class DependencyTracker:
    def __init__(self, store: ObjectStore, registry: DuckRegistry, tracker: Tracker) -> None:
        self._store = store
        self._registry = registry
        self._tracker = tracker

    def check(self, trigger: Trigger, ctx: Optional[ReconcileContext] = None) -> DependencyReadiness:
        """Classify the readiness of ``trigger``'s dependency; no annotation means ready."""

        raw = trigger.dependency_annotation
        if raw is None:
            return READY

        try:
            ref = parse_dependency_annotation(raw)
        except ValueError as exc:
            message = f"Unable to unmarshal objectReference from dependency annotation of trigger: {exc}"
            return DependencyReadiness(FALSE, "ReferenceError", message, error=message)

        key = self._tracker.track(ref.key(trigger.metadata.namespace), trigger.key)
        (ctx or background()).check()
        try:
            obj = self._store.get(key.group_kind, key.namespace, key.name)
        except NotFoundError as exc:
            return DependencyReadiness(
                FALSE,
                "DependencyDoesNotExist",
                f"Dependency does not exist: {exc}",
                error=f"propagating dependency readiness: getting the dependency: {exc}",
                tracked=key,
            )
        except StoreError as exc:
            return DependencyReadiness(
                UNKNOWN,
                "DependencyGetFailed",
                str(exc),
                error=f"propagating dependency readiness: getting the dependency: {exc}",
                tracked=key,
            )

        adapter = self._registry.conditionable(key.group_kind)
        if adapter is None:
            message = f"{key.group_kind} does not expose a Ready condition"
            return DependencyReadiness(FALSE, "ReferenceError", message, error=message, tracked=key)

        generation = obj.metadata.generation
        observed = adapter.get_observed_generation(obj)
        if generation != observed:
            LOG.debug("dependency %s is stale (generation %d, observed %d)", key, generation, observed)
            return DependencyReadiness(
                UNKNOWN,
                "GenerationNotEqual",
                f"The dependency's metadata.generation, {generation}, "
                f"is not equal to its status.observedGeneration, {observed}.",
                tracked=key,
            )

        ready = adapter.get_ready_condition(obj)
        if ready is None:
            return DependencyReadiness(UNKNOWN, tracked=key)
        if ready.is_true():
            return DependencyReadiness(TRUE, tracked=key)
        if ready.is_false():
            return DependencyReadiness(FALSE, ready.reason, ready.message, tracked=key)
        return DependencyReadiness(UNKNOWN, ready.reason, ready.message, tracked=key)
