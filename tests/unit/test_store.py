import pytest

from builders import NS, make_broker, make_trigger
from eventing_api.errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError
from eventing_api.objects import Condition, ObjectMeta, Unstructured
from eventing_api.store import Action, InMemoryObjectStore

BROKER_GK = "Broker.eventing.knative.dev"
TRIGGER_GK = "Trigger.eventing.knative.dev"


def test_create_assigns_identity():
    store = InMemoryObjectStore()

    created = store.create(make_trigger())

    assert created.metadata.uid
    assert created.metadata.generation == 1
    assert created.metadata.resource_version
    assert store.writes() == [Action("create", TRIGGER_GK, NS, "test-trigger")]


def test_create_rejects_duplicates():
    store = InMemoryObjectStore()
    store.create(make_trigger())

    with pytest.raises(AlreadyExistsError):
        store.create(make_trigger())


def test_get_returns_copies():
    store = InMemoryObjectStore()
    store.seed(make_trigger())

    first = store.get(TRIGGER_GK, NS, "test-trigger")
    first.status.subscriber_uri = "http://mutated/"

    assert store.get(TRIGGER_GK, NS, "test-trigger").status.subscriber_uri is None


def test_update_status_requires_current_version():
    store = InMemoryObjectStore()
    store.seed(make_trigger())
    stale = store.get(TRIGGER_GK, NS, "test-trigger")
    fresh = store.get(TRIGGER_GK, NS, "test-trigger")
    fresh.status.conditions.append(Condition("Ready"))
    store.update_status(fresh)

    stale.status.subscriber_uri = "http://example.com/"
    with pytest.raises(ConflictError):
        store.update_status(stale)


def test_update_status_leaves_spec_alone():
    store = InMemoryObjectStore()
    store.seed(make_trigger())
    trigger = store.get(TRIGGER_GK, NS, "test-trigger")
    trigger.spec.broker = "other"
    trigger.status.subscriber_uri = "http://example.com/"

    stored = store.update_status(trigger)

    assert stored.spec.broker == "test-broker"
    assert stored.status.subscriber_uri == "http://example.com/"
    assert stored.metadata.generation == 1


def test_update_bumps_generation_on_spec_change():
    store = InMemoryObjectStore()
    store.seed(make_trigger())
    trigger = store.get(TRIGGER_GK, NS, "test-trigger")
    trigger.spec.filter = {"type": "dev.knative.foo"}

    stored = store.update(trigger)

    assert stored.metadata.generation == 2


def test_patch_finalizers():
    store = InMemoryObjectStore()
    store.seed(make_broker())
    broker = store.get(BROKER_GK, NS, "test-broker")

    patched = store.patch(
        BROKER_GK, NS, "test-broker",
        {"metadata": {"finalizers": ["f"], "resourceVersion": broker.metadata.resource_version}},
    )

    assert patched.metadata.finalizers == ["f"]
    with pytest.raises(ConflictError):
        store.patch(
            BROKER_GK, NS, "test-broker",
            {"metadata": {"finalizers": [], "resourceVersion": broker.metadata.resource_version}},
        )
    with pytest.raises(StoreError):
        store.patch(BROKER_GK, NS, "test-broker", {"metadata": {"labels": {"a": "b"}}})


def test_patch_removing_last_finalizer_completes_deletion():
    store = InMemoryObjectStore()
    store.seed(make_broker(finalizers=["f"], deleted=True))

    store.patch(BROKER_GK, NS, "test-broker", {"metadata": {"finalizers": []}})

    with pytest.raises(NotFoundError):
        store.get(BROKER_GK, NS, "test-broker")


def test_list_filters_by_namespace_and_labels():
    store = InMemoryObjectStore()
    for name, namespace, labels in (("a", "ns1", {"x": "1"}), ("b", "ns1", {}), ("c", "ns2", {"x": "1"})):
        store.seed(Unstructured("v1", "ConfigMap", ObjectMeta(name=name, namespace=namespace, labels=labels)))

    assert [o.metadata.name for o in store.list("ConfigMap", "ns1")] == ["a", "b"]
    assert [o.metadata.name for o in store.list("ConfigMap", labels={"x": "1"})] == ["a", "c"]


def test_induced_failures():
    store = InMemoryObjectStore()
    store.induce_failure("delete", TRIGGER_GK)
    store.seed(make_trigger())

    with pytest.raises(StoreError) as excinfo:
        store.delete(TRIGGER_GK, NS, "test-trigger")

    assert str(excinfo.value) == f"inducing failure for delete {TRIGGER_GK}"
    store.clear_failures()
    store.delete(TRIGGER_GK, NS, "test-trigger")
    with pytest.raises(NotFoundError):
        store.get(TRIGGER_GK, NS, "test-trigger")


def test_upsert_keeps_identity_and_status():
    store = InMemoryObjectStore()
    store.seed(make_broker(finalizers=["f"]))
    broker = store.get(BROKER_GK, NS, "test-broker")
    broker.status.address = "http://broker/"
    store.update_status(broker)

    incoming = make_broker()
    incoming.metadata.uid = ""
    stored = store.upsert(incoming, keep_status=True)

    assert stored.metadata.uid == "test-broker-uid"
    assert stored.metadata.finalizers == ["f"]
    assert stored.status.address == "http://broker/"
    assert stored.metadata.generation == 1
