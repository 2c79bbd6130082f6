import pytest

from builders import (
    BROKER,
    BROKER_ADDRESS,
    CHANNEL_GK,
    CHANNEL_NAME,
    NS,
    condition,
    make_broker,
    make_channel,
    make_endpoints,
)
from eventing_api.errors import NotFoundError
from eventing_api.events import NORMAL, WARNING, Event
from eventing_api.objects import FALSE, TRUE, UNKNOWN, ObjectKey, OwnerReference
from eventing_api.store import Action
from mtbroker import BROKER_KIND, build_reconcilers
from mtbroker.context import ReconcileContext
from mtbroker.errors import OwnershipConflictError, PermanentError, ReconcileCancelled, ReconcileError

FINALIZER_UPDATED = Event(NORMAL, "FinalizerUpdate", 'Updated "test-broker" finalizers')


def reconcile(store, events, config, ctx=None):
    return build_reconcilers(store, events, config).broker.reconcile(NS, BROKER, ctx)


def seed_happy_path(store):
    store.seed(
        make_broker(),
        make_channel(),
        make_endpoints("broker-filter"),
        make_endpoints("broker-ingress"),
    )


def test_broker_ready(store, events, config):
    seed_happy_path(store)

    reconcile(store, events, config)

    broker = store.get(BROKER_KIND, NS, BROKER)
    assert condition(broker, "Ready").status == TRUE
    assert broker.status.address == BROKER_ADDRESS
    assert broker.status.trigger_channel.name == CHANNEL_NAME
    assert broker.status.trigger_channel.namespace == NS
    assert broker.status.observed_generation == 1
    assert broker.metadata.finalizers == ["brokers.eventing.knative.dev"]
    assert events.events == [FINALIZER_UPDATED]
    assert store.writes() == [
        Action("patch", BROKER_KIND, NS, BROKER),
        Action("update_status", BROKER_KIND, NS, BROKER),
    ]


def test_broker_second_pass_is_a_no_op(store, events, config):
    seed_happy_path(store)
    reconcile(store, events, config)
    writes = store.writes()

    reconcile(store, events, config)

    assert store.writes() == writes
    assert events.events == [FINALIZER_UPDATED]


def test_broker_without_channel_template(store, events, config):
    store.seed(make_broker(template=False))

    with pytest.raises(PermanentError) as excinfo:
        reconcile(store, events, config)

    assert excinfo.value.retryable is True
    broker = store.get(BROKER_KIND, NS, BROKER)
    trigger_channel = condition(broker, "TriggerChannel")
    assert trigger_channel.status == FALSE
    assert trigger_channel.reason == "ChannelTemplateFailed"
    assert trigger_channel.message == (
        "Error on setting up the ChannelTemplate: Broker.Spec.ChannelTemplate is nil"
    )
    assert condition(broker, "Ready").reason == "ChannelTemplateFailed"
    assert events.events == [
        FINALIZER_UPDATED,
        Event(WARNING, "InternalError", "Broker.Spec.ChannelTemplate is nil"),
    ]


def test_broker_creates_trigger_channel(store, events, config):
    store.seed(make_broker())

    reconcile(store, events, config)

    channel = store.get(CHANNEL_GK, NS, CHANNEL_NAME)
    assert channel.metadata.labels == {
        "eventing.knative.dev/broker": BROKER,
        "eventing.knative.dev/brokerEverything": "true",
    }
    owner = channel.metadata.controller_ref()
    assert owner.kind == "Broker"
    assert owner.uid == "test-broker-uid"
    assert owner.block_owner_deletion is True

    # A freshly created channel has no address yet.
    broker = store.get(BROKER_KIND, NS, BROKER)
    trigger_channel = condition(broker, "TriggerChannel")
    assert trigger_channel.status == FALSE
    assert trigger_channel.reason == "NoAddress"
    assert trigger_channel.message == "Channel does not have an address."
    assert condition(broker, "FilterReady").status == UNKNOWN
    assert broker.status.address is None


def test_broker_channel_create_failure(store, events, config):
    store.seed(make_broker())
    store.induce_failure("create", CHANNEL_GK)

    with pytest.raises(ReconcileError):
        reconcile(store, events, config)

    broker = store.get(BROKER_KIND, NS, BROKER)
    trigger_channel = condition(broker, "TriggerChannel")
    assert trigger_channel.status == FALSE
    assert trigger_channel.reason == "ChannelFailure"
    assert trigger_channel.message == f"inducing failure for create {CHANNEL_GK}"
    assert events.events[-1] == Event(
        WARNING,
        "InternalError",
        f"Failed to reconcile trigger channel: inducing failure for create {CHANNEL_GK}",
    )


def test_broker_channel_owned_by_someone_else(store, events, config):
    channel = make_channel()
    channel.metadata.owner_references = [
        OwnerReference("eventing.knative.dev/v1beta1", "Broker", "other", "other-uid")
    ]
    store.seed(make_broker(), channel)

    with pytest.raises(OwnershipConflictError):
        reconcile(store, events, config)

    broker = store.get(BROKER_KIND, NS, BROKER)
    assert condition(broker, "TriggerChannel").reason == "ChannelFailure"
    assert "does not own channel" in condition(broker, "TriggerChannel").message


def test_broker_endpoints_unavailable(store, events, config):
    store.seed(
        make_broker(),
        make_channel(),
        make_endpoints("broker-filter", addresses=()),
    )

    reconcile(store, events, config)

    broker = store.get(BROKER_KIND, NS, BROKER)
    assert condition(broker, "TriggerChannel").status == TRUE
    filter_ready = condition(broker, "FilterReady")
    assert filter_ready.status == FALSE
    assert filter_ready.reason == "EndpointsUnavailable"
    assert filter_ready.message == 'Endpoints "broker-filter" are unavailable.'
    ingress_ready = condition(broker, "IngressReady")
    assert ingress_ready.status == FALSE
    assert ingress_ready.message == 'Endpoints "broker-ingress" are unavailable.'
    assert condition(broker, "Addressable").status == TRUE
    assert broker.status.address == BROKER_ADDRESS
    ready = condition(broker, "Ready")
    assert ready.status == FALSE
    assert ready.reason == "EndpointsUnavailable"


def test_broker_endpoints_lookup_failure(store, events, config):
    seed_happy_path(store)
    store.induce_failure("get", "Endpoints")

    with pytest.raises(ReconcileError):
        reconcile(store, events, config)

    broker = store.get(BROKER_KIND, NS, BROKER)
    assert condition(broker, "FilterReady").reason == "ServiceFailure"
    assert condition(broker, "IngressReady").reason == "ServiceFailure"
    assert condition(broker, "Addressable").status == TRUE


def test_broker_status_update_failure(store, events, config):
    seed_happy_path(store)
    store.induce_failure("update_status", BROKER_KIND)

    with pytest.raises(ReconcileError):
        reconcile(store, events, config)

    assert events.events == [
        FINALIZER_UPDATED,
        Event(
            WARNING,
            "UpdateFailed",
            f'Failed to update status for "test-broker": inducing failure for update_status {BROKER_KIND}',
        ),
    ]


def test_broker_being_deleted_removes_finalizer(store, events, config):
    store.seed(make_broker(finalizers=["brokers.eventing.knative.dev"], deleted=True))

    assert reconcile(store, events, config) is None

    assert store.writes() == [Action("patch", BROKER_KIND, NS, BROKER)]
    assert events.events == [
        FINALIZER_UPDATED,
        Event(NORMAL, "BrokerReconciled", 'Broker reconciled: "test-namespace/test-broker"'),
    ]
    with pytest.raises(NotFoundError):
        store.get(BROKER_KIND, NS, BROKER)


def test_broker_being_deleted_without_finalizer(store, events, config):
    store.seed(make_broker(deleted=True))

    reconcile(store, events, config)

    assert store.writes() == []
    assert [e.reason for e in events.events] == ["BrokerReconciled"]


def test_broker_not_found(store, events, config):
    assert reconcile(store, events, config) is None
    assert store.writes() == []
    assert events.events == []


def test_broker_tracks_channel_and_endpoints(store, events, config):
    seed_happy_path(store)
    reconcilers = build_reconcilers(store, events, config)

    reconcilers.broker.reconcile(NS, BROKER)

    broker_key = ObjectKey(BROKER_KIND, NS, BROKER)
    tracker = reconcilers.tracker
    assert tracker.dependents_of(ObjectKey(CHANNEL_GK, NS, CHANNEL_NAME)) == {broker_key}
    assert tracker.dependents_of(ObjectKey("Endpoints", "knative-eventing", "broker-filter")) == {broker_key}


def test_broker_cancelled_pass_writes_nothing(store, events, config):
    seed_happy_path(store)
    ctx = ReconcileContext()
    ctx.cancel()

    with pytest.raises(ReconcileCancelled):
        reconcile(store, events, config, ctx)

    assert store.writes() == []
