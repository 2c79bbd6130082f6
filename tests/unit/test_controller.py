from threading import Event

import pytest

from builders import (
    BROKER,
    CHANNEL_GK,
    CHANNEL_NAME,
    NS,
    SUBSCRIPTION_NAME,
    TRIGGER,
    condition,
    make_broker,
    make_channel,
    make_endpoints,
    make_trigger,
    ready,
)
from broker_agent.controller import Controller
from eventing_api.objects import TRUE, ObjectKey, OwnerReference
from mtbroker import BROKER_KIND, TRIGGER_KIND, build_reconcilers
from mtbroker.subscription import SUBSCRIPTION_KIND

BROKER_KEY = ObjectKey(BROKER_KIND, NS, BROKER)
TRIGGER_KEY = ObjectKey(TRIGGER_KIND, NS, TRIGGER)


def build_controller(store, events, config, max_retries=3):
    reconcilers = build_reconcilers(store, events, config)
    return Controller(reconcilers, store, Event(), max_retries=max_retries)


def drain(controller, limit=10):
    for _ in range(limit):
        if not controller.process_pending():
            return
    raise AssertionError("controller did not settle")


def test_enqueue_deduplicates(store, events, config):
    controller = build_controller(store, events, config)

    assert controller.enqueue(BROKER_KEY) is True
    assert controller.enqueue(BROKER_KEY) is False
    assert controller.pending() == [BROKER_KEY]


def test_enqueue_rejects_unknown_kinds(store, events, config):
    controller = build_controller(store, events, config)

    with pytest.raises(ValueError):
        controller.enqueue(ObjectKey("Service", NS, "sink"))


def test_broker_change_fans_out_to_triggers(store, events, config):
    store.seed(make_broker(), make_trigger())
    controller = build_controller(store, events, config)

    controller.notify(BROKER_KEY)

    assert controller.pending() == [BROKER_KEY, TRIGGER_KEY]


def test_converges_broker_and_trigger(store, events, config):
    store.seed(
        make_broker(),
        make_channel(),
        make_endpoints("broker-filter"),
        make_endpoints("broker-ingress"),
        make_trigger(),
    )
    controller = build_controller(store, events, config)
    controller.notify(BROKER_KEY)

    drain(controller)

    broker = store.get(BROKER_KIND, NS, BROKER)
    trigger = store.get(TRIGGER_KIND, NS, TRIGGER)
    assert condition(broker, "Ready").status == TRUE
    assert condition(trigger, "BrokerReady").status == TRUE
    assert condition(trigger, "Subscribed").reason == "SubscriptionNotConfigured"


def test_tracked_object_change_requeues_dependents(store, events, config):
    store.seed(make_broker())
    controller = build_controller(store, events, config)
    controller.notify(BROKER_KEY)
    drain(controller)

    controller.notify(ObjectKey(CHANNEL_GK, NS, CHANNEL_NAME))

    assert controller.pending() == [BROKER_KEY]


def test_retryable_errors_are_retried_up_to_the_limit(store, events, config):
    store.seed(make_broker())
    store.induce_failure("create", CHANNEL_GK)
    controller = build_controller(store, events, config, max_retries=3)
    controller.enqueue(BROKER_KEY)

    drain(controller)

    creates = [a for a in store.writes() if a.verb == "create"]
    assert len(creates) == 3
    assert controller.pending() == []


def test_spec_errors_are_retried_up_to_the_limit(store, events, config):
    store.seed(make_broker(template=False))
    controller = build_controller(store, events, config, max_retries=3)
    controller.enqueue(BROKER_KEY)

    assert controller.process_pending() == 1
    assert controller.pending() == [BROKER_KEY]

    drain(controller)

    assert controller.pending() == []


def test_ownership_conflicts_are_not_retried(store, events, config):
    channel = make_channel()
    channel.metadata.owner_references = [
        OwnerReference("eventing.knative.dev/v1beta1", "Broker", "other", "other-uid")
    ]
    store.seed(make_broker(), channel)
    controller = build_controller(store, events, config)
    controller.enqueue(BROKER_KEY)

    assert controller.process_pending() == 1

    assert controller.pending() == []


def test_stop_event_leaves_keys_queued(store, events, config):
    store.seed(make_broker())
    stop_event = Event()
    controller = Controller(build_reconcilers(store, events, config), store, stop_event)
    controller.enqueue(BROKER_KEY)
    stop_event.set()

    assert controller.process_pending() == 0
    assert controller.pending() == [BROKER_KEY]


def test_owned_subscription_change_requeues_its_trigger(store, events, config):
    store.seed(make_broker(conditions=ready(), with_channel=True), make_trigger())
    controller = build_controller(store, events, config)
    controller.enqueue(TRIGGER_KEY)
    drain(controller)
    assert condition(store.get(TRIGGER_KIND, NS, TRIGGER), "Subscribed").status != TRUE

    subscription = store.get(SUBSCRIPTION_KIND, NS, SUBSCRIPTION_NAME)
    subscription.status.conditions = ready()
    store.update_status(subscription)
    controller.notify(subscription.key)

    assert controller.pending() == [TRIGGER_KEY]
    drain(controller)
    assert condition(store.get(TRIGGER_KIND, NS, TRIGGER), "Subscribed").status == TRUE


def test_unowned_object_change_queues_nothing(store, events, config):
    store.seed(make_endpoints("broker-filter"))
    controller = build_controller(store, events, config)

    controller.notify(ObjectKey("Endpoints", "knative-eventing", "broker-filter"))
    controller.notify(ObjectKey(SUBSCRIPTION_KIND, NS, "gone"))

    assert controller.pending() == []
