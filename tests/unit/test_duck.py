import pytest

from builders import make_broker, make_config, ready
from eventing_api.duck import DuckRegistry, ServiceAddressable, StatusConditions
from eventing_api.events import LoggingEventSink
from eventing_api.objects import ObjectMeta, Unstructured
from mtbroker import build_default_registry


def test_registry_rejects_duplicate_registration():
    registry = DuckRegistry()
    registry.register_conditionable("Broker.eventing.knative.dev", StatusConditions())

    with pytest.raises(ValueError):
        registry.register_conditionable("Broker.eventing.knative.dev", StatusConditions())

    registry.unregister("Broker.eventing.knative.dev")
    assert registry.conditionable("Broker.eventing.knative.dev") is None


def test_default_registry_reads_broker_status():
    registry = build_default_registry(make_config())
    broker = make_broker(conditions=ready())
    broker.status.address = "http://broker-ingress/ns/default"
    broker.status.observed_generation = 4

    assert registry.addressable(broker.group_kind).get_address(broker) == "http://broker-ingress/ns/default"
    adapter = registry.conditionable(broker.group_kind)
    assert adapter.get_ready_condition(broker).is_true()
    assert adapter.get_observed_generation(broker) == 4


def test_default_registry_includes_configured_kinds():
    registry = build_default_registry(make_config(addressable_kinds=("Service.serving.knative.dev",)))

    assert registry.addressable("Service.serving.knative.dev") is not None
    assert registry.conditionable("Service.serving.knative.dev") is None


def test_service_address_uses_cluster_domain():
    service = Unstructured("v1", "Service", ObjectMeta(name="sink", namespace="ns"))

    assert ServiceAddressable("corp.example").get_address(service) == "http://sink.ns.svc.corp.example/"


def test_logging_event_sink(caplog):
    with caplog.at_level("INFO", logger="eventing_api.events"):
        LoggingEventSink().warning("UpdateFailed", "boom")

    assert "reason=UpdateFailed: boom" in caplog.text
