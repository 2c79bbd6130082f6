"""Trigger reconciliation: broker readiness, dependency, subscriber and subscription."""

from __future__ import annotations

import logging
from typing import List, Optional

from eventing_api.errors import NotFoundError, StoreError
from eventing_api.events import EventSink
from eventing_api.objects import FALSE, TRUE, ObjectKey, group_kind
from eventing_api.store import ObjectStore

from .conditions import (
    BROKER_READY,
    DEPENDENCY_READY,
    READY,
    SUBSCRIBER_RESOLVED,
    TRIGGER_CONDITIONS,
    get_condition,
)
from .context import ReconcileContext, background
from .dependency import DependencyTracker
from .errors import ReconcileCancelled, ReconcileError
from .resolver import AddressResolver, AddressUnresolved, InvalidDestination, ResolveError
from .resources import EVENTING_API_VERSION, Broker, Trigger
from .subscription import SubscriptionReconciler
from .tracker import Tracker

LOG = logging.getLogger(__name__)

TRIGGER_KIND = group_kind(EVENTING_API_VERSION, "Trigger")
BROKER_KIND = group_kind(EVENTING_API_VERSION, "Broker")

BROKER_DOES_NOT_EXIST = "BrokerDoesNotExist"
SUBSCRIBER_UNRESOLVED = "Unable to get the Subscriber's URI"
INVALID_SUBSCRIBER = "InvalidSubscriber"
ADDRESS_UNRESOLVED = "AddressUnresolved"

TRIGGER_RECONCILED = "TriggerReconciled"
TRIGGER_RECONCILE_FAILED = "TriggerReconcileFailed"
TRIGGER_UPDATE_STATUS_FAILED = "TriggerUpdateStatusFailed"


class TriggerReconciler:
    """Compute a trigger's status from its broker, dependency, subscriber and child.

    Every check runs on each pass.  The status is computed on a copy of the
    stored trigger and written once, only when it changed.
    """

    def __init__(
        self,
        store: ObjectStore,
        events: EventSink,
        tracker: Tracker,
        resolver: AddressResolver,
        dependencies: DependencyTracker,
        subscriptions: SubscriptionReconciler,
    ) -> None:
        self._store = store
        self._events = events
        self._tracker = tracker
        self._resolver = resolver
        self._dependencies = dependencies
        self._subscriptions = subscriptions

    def reconcile(self, namespace: str, name: str, ctx: Optional[ReconcileContext] = None) -> Optional[Trigger]:
        ctx = ctx or background()
        ctx.check()
        try:
            original = self._store.get(TRIGGER_KIND, namespace, name)
        except NotFoundError:
            LOG.debug("Trigger %s/%s no longer exists", namespace, name)
            self._tracker.untrack(_trigger_key(namespace, name))
            return None
        except StoreError as exc:
            raise ReconcileError(str(exc)) from exc

        trigger = original.copy()
        error: Optional[ReconcileError] = None
        try:
            self._reconcile_kind(trigger, ctx)
        except ReconcileCancelled:
            raise
        except ReconcileError as exc:
            error = exc
            self._events.warning(TRIGGER_RECONCILE_FAILED, f"Trigger reconcile failed: {exc}")

        self._update_status(original, trigger, ctx)
        if error is not None:
            raise error
        self._events.normal(TRIGGER_RECONCILED, "Trigger reconciled")
        return trigger

    def _reconcile_kind(self, trigger: Trigger, ctx: ReconcileContext) -> None:
        # References are re-recorded below; drop the ones from the previous pass.
        self._tracker.untrack(trigger.key)
        conditions = trigger.status.conditions
        TRIGGER_CONDITIONS.initialize(conditions)
        trigger.status.observed_generation = trigger.metadata.generation

        broker = self._get_broker(trigger, ctx)
        if broker is None or broker.metadata.deletion_timestamp:
            TRIGGER_CONDITIONS.mark_false(
                conditions,
                BROKER_READY,
                BROKER_DOES_NOT_EXIST,
                f'Broker "{trigger.spec.broker}" does not exist',
            )
            return
        self._propagate_broker(trigger, broker)

        errors: List[ReconcileError] = []

        dependency = self._dependencies.check(trigger, ctx)
        if dependency.status == TRUE:
            TRIGGER_CONDITIONS.mark_true(conditions, DEPENDENCY_READY)
        elif dependency.status == FALSE:
            TRIGGER_CONDITIONS.mark_false(conditions, DEPENDENCY_READY, dependency.reason, dependency.message)
        else:
            TRIGGER_CONDITIONS.mark_unknown(conditions, DEPENDENCY_READY, dependency.reason, dependency.message)
        if dependency.error:
            errors.append(ReconcileError(dependency.error))

        try:
            resolution = self._resolver.resolve(
                trigger.spec.subscriber, trigger.metadata.namespace, trigger.key, ctx
            )
        except AddressUnresolved as exc:
            trigger.status.subscriber_uri = None
            TRIGGER_CONDITIONS.mark_unknown(conditions, SUBSCRIBER_RESOLVED, ADDRESS_UNRESOLVED, str(exc))
            errors.append(ReconcileError(str(exc)))
        except InvalidDestination as exc:
            trigger.status.subscriber_uri = None
            TRIGGER_CONDITIONS.mark_false(conditions, SUBSCRIBER_RESOLVED, INVALID_SUBSCRIBER, str(exc))
            errors.append(ReconcileError(str(exc)))
        except ResolveError as exc:
            trigger.status.subscriber_uri = None
            TRIGGER_CONDITIONS.mark_false(conditions, SUBSCRIBER_RESOLVED, SUBSCRIBER_UNRESOLVED, str(exc))
            errors.append(ReconcileError(str(exc)))
        else:
            trigger.status.subscriber_uri = resolution.uri
            TRIGGER_CONDITIONS.mark_true(conditions, SUBSCRIBER_RESOLVED)
            if broker.status.trigger_channel is None:
                LOG.debug("Broker %s has no trigger channel yet, skipping subscription for %s",
                          broker.metadata.name, trigger.metadata.name)
            else:
                try:
                    self._subscriptions.reconcile(trigger, broker, resolution.uri, ctx)
                except ReconcileCancelled:
                    raise
                except ReconcileError as exc:
                    errors.append(exc)

        if errors:
            raise errors[0]

    def _get_broker(self, trigger: Trigger, ctx: ReconcileContext) -> Optional[Broker]:
        namespace = trigger.metadata.namespace
        self._tracker.track(_broker_key(namespace, trigger.spec.broker), trigger.key)
        ctx.check()
        try:
            return self._store.get(BROKER_KIND, namespace, trigger.spec.broker)
        except NotFoundError:
            return None
        except StoreError as exc:
            TRIGGER_CONDITIONS.mark_unknown(trigger.status.conditions, BROKER_READY, "BrokerGetFailed", str(exc))
            raise ReconcileError(str(exc)) from exc

    @staticmethod
    def _propagate_broker(trigger: Trigger, broker: Broker) -> None:
        conditions = trigger.status.conditions
        ready = get_condition(broker.status.conditions, READY)
        if ready is None:
            TRIGGER_CONDITIONS.mark_unknown(conditions, BROKER_READY, "BrokerUnknown", "The status of Broker is invalid")
        elif ready.is_true():
            TRIGGER_CONDITIONS.mark_true(conditions, BROKER_READY)
        elif ready.is_false():
            TRIGGER_CONDITIONS.mark_false(conditions, BROKER_READY, ready.reason, ready.message)
        else:
            TRIGGER_CONDITIONS.mark_unknown(conditions, BROKER_READY, ready.reason, ready.message)

    def _update_status(self, original: Trigger, trigger: Trigger, ctx: ReconcileContext) -> None:
        if trigger.status == original.status:
            LOG.debug("Trigger %s/%s status unchanged", trigger.metadata.namespace, trigger.metadata.name)
            return
        ctx.check()
        try:
            self._store.update_status(trigger)
        except StoreError as exc:
            self._events.warning(TRIGGER_UPDATE_STATUS_FAILED, f"Failed to update Trigger's status: {exc}")
            raise ReconcileError(f"Trigger reconcile failed: {exc}") from exc


def _trigger_key(namespace: str, name: str) -> ObjectKey:
    return ObjectKey(TRIGGER_KIND, namespace, name)


def _broker_key(namespace: str, name: str) -> ObjectKey:
    return ObjectKey(BROKER_KIND, namespace, name)
