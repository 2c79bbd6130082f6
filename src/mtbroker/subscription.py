"""Converge the Subscription a trigger owns on its broker's trigger channel."""

from __future__ import annotations

import logging
from typing import Optional

from eventing_api.errors import NotFoundError, StoreError
from eventing_api.events import EventSink
from eventing_api.objects import group_kind
from eventing_api.store import ObjectStore

from .conditions import READY, SUBSCRIBED, TRIGGER_CONDITIONS, get_condition
from .config import ControllerConfig
from .context import ReconcileContext, background
from .errors import OwnershipConflictError, ReconcileError
from .names import legacy_subscription_name
from .resources import (
    MESSAGING_API_VERSION,
    Broker,
    Subscription,
    Trigger,
    filter_subscriber_uri,
    make_subscription,
)

LOG = logging.getLogger(__name__)

SUBSCRIPTION_KIND = group_kind(MESSAGING_API_VERSION, "Subscription")

SUBSCRIPTION_NOT_CONFIGURED = "SubscriptionNotConfigured"
SUBSCRIPTION_NOT_CONFIGURED_MESSAGE = "Subscription has not yet been reconciled."
NOT_SUBSCRIBED = "NotSubscribed"

SUBSCRIPTION_DELETED = "SubscriptionDeleted"
SUBSCRIPTION_CREATE_FAILED = "SubscriptionCreateFailed"
SUBSCRIPTION_DELETE_FAILED = "SubscriptionDeleteFailed"


class SubscriptionReconciler:
    """Keep exactly one Subscription per trigger.

    Subscriptions are never patched: a spec drift is fixed by deleting and
    recreating the child.  Results are recorded in the trigger's
    ``Subscribed`` condition; failures additionally raise.
    """

    def __init__(self, store: ObjectStore, events: EventSink, config: ControllerConfig) -> None:
        self._store = store
        self._events = events
        self._config = config

    def desired(self, trigger: Trigger, broker: Broker, subscriber_uri: str) -> Subscription:
        if broker.status.trigger_channel is None:
            raise ValueError(f'broker "{broker.metadata.name}" has no trigger channel')
        if self._config.subscriber_via_filter:
            subscriber_uri = filter_subscriber_uri(trigger, self._config)
        return make_subscription(trigger, broker.status.trigger_channel, broker.reference(), subscriber_uri)

    def reconcile(
        self,
        trigger: Trigger,
        broker: Broker,
        subscriber_uri: str,
        ctx: Optional[ReconcileContext] = None,
    ) -> Subscription:
        """Converge the child and update ``trigger.status.conditions``."""

        ctx = ctx or background()
        expected = self.desired(trigger, broker, subscriber_uri)
        self._remove_legacy(trigger, expected.metadata.name, ctx)

        ctx.check()
        meta = expected.metadata
        try:
            current = self._store.get(SUBSCRIPTION_KIND, meta.namespace, meta.name)
        except NotFoundError:
            return self._create(trigger, expected, ctx)
        except StoreError as exc:
            self._not_subscribed(trigger, str(exc))
            raise ReconcileError(str(exc)) from exc

        if not current.metadata.is_controlled_by(trigger.metadata):
            message = f'trigger "{trigger.metadata.name}" does not own subscription "{meta.name}"'
            self._not_subscribed(trigger, message)
            raise OwnershipConflictError(message)

        if current.spec != expected.spec:
            LOG.info("Subscription %s/%s differs from desired state, recreating", meta.namespace, meta.name)
            self._delete(trigger, meta.namespace, meta.name, ctx)
            return self._create(trigger, expected, ctx)

        self._propagate(trigger, current)
        return current

    def _remove_legacy(self, trigger: Trigger, canonical: str, ctx: ReconcileContext) -> None:
        namespace = trigger.metadata.namespace
        legacy = legacy_subscription_name(trigger.spec.broker, trigger.metadata.name)
        if legacy == canonical:
            return

        ctx.check()
        try:
            existing = self._store.get(SUBSCRIPTION_KIND, namespace, legacy)
        except NotFoundError:
            return
        except StoreError as exc:
            self._not_subscribed(trigger, str(exc))
            raise ReconcileError(str(exc)) from exc

        if not existing.metadata.is_controlled_by(trigger.metadata):
            LOG.debug("Subscription %s/%s is not owned by trigger %s, leaving it",
                      namespace, legacy, trigger.metadata.name)
            return

        self._delete(trigger, namespace, legacy, ctx)
        LOG.info("Removed deprecated subscription %s/%s", namespace, legacy)
        self._events.normal(SUBSCRIPTION_DELETED, f'Deprecated subscription removed: "{namespace}/{legacy}"')

    def _create(self, trigger: Trigger, expected: Subscription, ctx: ReconcileContext) -> Subscription:
        ctx.check()
        try:
            created = self._store.create(expected)
        except StoreError as exc:
            self._events.warning(SUBSCRIPTION_CREATE_FAILED, f"Create Trigger's subscription failed: {exc}")
            self._not_subscribed(trigger, str(exc))
            raise ReconcileError(str(exc)) from exc
        LOG.info("Created subscription %s/%s", created.metadata.namespace, created.metadata.name)
        TRIGGER_CONDITIONS.mark_unknown(
            trigger.status.conditions,
            SUBSCRIBED,
            SUBSCRIPTION_NOT_CONFIGURED,
            SUBSCRIPTION_NOT_CONFIGURED_MESSAGE,
        )
        return created

    def _delete(self, trigger: Trigger, namespace: str, name: str, ctx: ReconcileContext) -> None:
        ctx.check()
        try:
            self._store.delete(SUBSCRIPTION_KIND, namespace, name)
        except NotFoundError:
            LOG.debug("Subscription %s/%s already gone", namespace, name)
        except StoreError as exc:
            self._events.warning(SUBSCRIPTION_DELETE_FAILED, f"Delete Trigger's subscription failed: {exc}")
            self._not_subscribed(trigger, str(exc))
            raise ReconcileError(str(exc)) from exc

    def _not_subscribed(self, trigger: Trigger, message: str) -> None:
        TRIGGER_CONDITIONS.mark_unknown(trigger.status.conditions, SUBSCRIBED, NOT_SUBSCRIBED, message)

    @staticmethod
    def _propagate(trigger: Trigger, subscription: Subscription) -> None:
        conditions = trigger.status.conditions
        ready = get_condition(subscription.status.conditions, READY)
        if ready is None:
            TRIGGER_CONDITIONS.mark_unknown(
                conditions, SUBSCRIBED, SUBSCRIPTION_NOT_CONFIGURED, SUBSCRIPTION_NOT_CONFIGURED_MESSAGE
            )
        elif ready.is_true():
            TRIGGER_CONDITIONS.mark_true(conditions, SUBSCRIBED)
        elif ready.is_false():
            TRIGGER_CONDITIONS.mark_false(conditions, SUBSCRIBED, ready.reason, ready.message)
        else:
            TRIGGER_CONDITIONS.mark_unknown(conditions, SUBSCRIBED, ready.reason, ready.message)
