"""Multi-tenant channel broker reconciliation core.

The package converges two tenant-facing kinds toward the state their specs
imply:

* a :class:`~mtbroker.resources.Broker` gets a finalizer, a shared trigger
  channel built from its channel template and a public ingress address; its
  ``Ready`` condition reflects the channel and the shared filter/ingress
  services;
* a :class:`~mtbroker.resources.Trigger` gets exactly one Subscription on its
  broker's trigger channel, a resolved subscriber URI and a ``Ready``
  condition derived from the broker, an optional dependency, the subscriber
  and the Subscription.

The reconcilers only talk to the outside world through the seams defined in
:mod:`eventing_api`, so the whole core can be driven from an in-memory store.
"""

from typing import Optional

from eventing_api.duck import DuckRegistry, ServiceAddressable, StatusAddressable, StatusConditions
from eventing_api.events import EventSink
from eventing_api.store import ObjectStore

from .broker import BROKER_KIND, BrokerReconciler  # noqa: F401
from .config import ControllerConfig  # noqa: F401
from .dependency import DependencyTracker
from .resolver import AddressResolver
from .subscription import SUBSCRIPTION_KIND, SubscriptionReconciler
from .tracker import Tracker
from .trigger import TRIGGER_KIND, TriggerReconciler  # noqa: F401

IN_MEMORY_CHANNEL_KIND = "InMemoryChannel.messaging.knative.dev"
SERVICE_KIND = "Service"

__all__ = [
    "BROKER_KIND",
    "BrokerReconciler",
    "ControllerConfig",
    "Reconcilers",
    "TRIGGER_KIND",
    "TriggerReconciler",
    "build_default_registry",
    "build_reconcilers",
]


def build_default_registry(config: ControllerConfig) -> DuckRegistry:
    """Registry with the kinds this project knows about plus the configured ones."""

    registry = DuckRegistry()
    status = StatusAddressable(config.scheme)
    conditions = StatusConditions()

    registry.register_addressable(BROKER_KIND, status)
    registry.register_addressable(IN_MEMORY_CHANNEL_KIND, status)
    registry.register_addressable(SERVICE_KIND, ServiceAddressable(config.cluster_domain, config.scheme))
    registry.register_conditionable(BROKER_KIND, conditions)
    registry.register_conditionable(SUBSCRIPTION_KIND, conditions)
    registry.register_conditionable(IN_MEMORY_CHANNEL_KIND, conditions)

    for group_kind in config.addressable_kinds:
        if registry.addressable(group_kind) is None:
            registry.register_addressable(group_kind, status)
    for group_kind in config.conditionable_kinds:
        if registry.conditionable(group_kind) is None:
            registry.register_conditionable(group_kind, conditions)
    return registry


class Reconcilers:
    """The broker and trigger reconcilers sharing one store, sink and tracker."""

    def __init__(self, broker: BrokerReconciler, trigger: TriggerReconciler, tracker: Tracker) -> None:
        self.broker = broker
        self.trigger = trigger
        self.tracker = tracker


def build_reconcilers(
    store: ObjectStore,
    events: EventSink,
    config: ControllerConfig,
    registry: Optional[DuckRegistry] = None,
) -> Reconcilers:
    registry = registry or build_default_registry(config)
    tracker = Tracker()
    resolver = AddressResolver(store, registry, tracker)
    dependencies = DependencyTracker(store, registry, tracker)
    subscriptions = SubscriptionReconciler(store, events, config)
    return Reconcilers(
        broker=BrokerReconciler(store, events, tracker, registry, config),
        trigger=TriggerReconciler(store, events, tracker, resolver, dependencies, subscriptions),
        tracker=tracker,
    )
