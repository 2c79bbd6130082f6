"""Broker, Trigger and Subscription resources and the builders for owned children."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from eventing_api.objects import (
    Condition,
    ObjectMeta,
    ObjectReference,
    StoredObject,
    Unstructured,
)

from .config import ControllerConfig
from .names import subscription_name, trigger_channel_name

EVENTING_API_VERSION = "eventing.knative.dev/v1beta1"
MESSAGING_API_VERSION = "messaging.knative.dev/v1beta1"

BROKER_LABEL = "eventing.knative.dev/broker"
TRIGGER_LABEL = "eventing.knative.dev/trigger"
BROKER_EVERYTHING_LABEL = "eventing.knative.dev/brokerEverything"
DEPENDENCY_ANNOTATION = "knative.dev/dependency"


def _conditions_from(raw: Mapping[str, Any]) -> List[Condition]:
    return [Condition.from_dict(c) for c in raw.get("conditions") or []]


def _status_dict(conditions: List[Condition], observed_generation: int) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if conditions:
        data["conditions"] = [c.to_dict() for c in conditions]
    if observed_generation:
        data["observedGeneration"] = observed_generation
    return data


# ----------------------------------------------------------------------
# Broker
# ----------------------------------------------------------------------
@dataclass
class ChannelTemplate:
    api_version: str
    kind: str
    spec: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BrokerSpec:
    channel_template: Optional[ChannelTemplate] = None
    delivery: Optional[Dict[str, Any]] = None


@dataclass
class BrokerStatus:
    conditions: List[Condition] = field(default_factory=list)
    observed_generation: int = 0
    address: Optional[str] = None
    trigger_channel: Optional[ObjectReference] = None


@dataclass
class Broker(StoredObject):
    metadata: ObjectMeta
    spec: BrokerSpec = field(default_factory=BrokerSpec)
    status: BrokerStatus = field(default_factory=BrokerStatus)
    api_version: str = EVENTING_API_VERSION
    kind: str = "Broker"

    def spec_view(self) -> Any:
        return self.spec

    def to_dict(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {}
        template = self.spec.channel_template
        if template is not None:
            spec["channelTemplateSpec"] = {
                "apiVersion": template.api_version,
                "kind": template.kind,
                "spec": copy.deepcopy(template.spec),
            }
        if self.spec.delivery:
            spec["delivery"] = copy.deepcopy(self.spec.delivery)
        status = _status_dict(self.status.conditions, self.status.observed_generation)
        if self.status.address:
            status["address"] = {"url": self.status.address}
        if self.status.trigger_channel is not None:
            status["triggerChannel"] = self.status.trigger_channel.to_dict()
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": spec,
            "status": status,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Broker":
        spec = data.get("spec") or {}
        raw_template = spec.get("channelTemplateSpec")
        template = None
        if raw_template:
            template = ChannelTemplate(
                api_version=str(raw_template["apiVersion"]),
                kind=str(raw_template["kind"]),
                spec=dict(raw_template.get("spec") or {}),
            )
        status = data.get("status") or {}
        channel = status.get("triggerChannel")
        return cls(
            metadata=ObjectMeta.from_dict(data["metadata"]),
            spec=BrokerSpec(channel_template=template, delivery=spec.get("delivery")),
            status=BrokerStatus(
                conditions=_conditions_from(status),
                observed_generation=int(status.get("observedGeneration", 0)),
                address=(status.get("address") or {}).get("url"),
                trigger_channel=ObjectReference.from_dict(channel) if channel else None,
            ),
        )


# ----------------------------------------------------------------------
# Trigger
# ----------------------------------------------------------------------
@dataclass
class Destination:
    """A literal URI, a reference to an Addressable, or a reference plus relative URI."""

    uri: Optional[str] = None
    ref: Optional[ObjectReference] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.ref is not None:
            data["ref"] = self.ref.to_dict()
        if self.uri:
            data["uri"] = self.uri
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Destination":
        ref = data.get("ref")
        return cls(uri=data.get("uri"), ref=ObjectReference.from_dict(ref) if ref else None)


@dataclass
class TriggerSpec:
    broker: str
    subscriber: Destination = field(default_factory=Destination)
    filter: Dict[str, str] = field(default_factory=dict)
    delivery: Optional[Dict[str, Any]] = None


@dataclass
class TriggerStatus:
    conditions: List[Condition] = field(default_factory=list)
    observed_generation: int = 0
    subscriber_uri: Optional[str] = None


@dataclass
class Trigger(StoredObject):
    metadata: ObjectMeta
    spec: TriggerSpec
    status: TriggerStatus = field(default_factory=TriggerStatus)
    api_version: str = EVENTING_API_VERSION
    kind: str = "Trigger"

    @property
    def dependency_annotation(self) -> Optional[str]:
        return self.metadata.annotations.get(DEPENDENCY_ANNOTATION)

    def spec_view(self) -> Any:
        return (self.spec, self.metadata.annotations)

    def to_dict(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            "broker": self.spec.broker,
            "subscriber": self.spec.subscriber.to_dict(),
        }
        if self.spec.filter:
            spec["filter"] = {"attributes": dict(self.spec.filter)}
        if self.spec.delivery:
            spec["delivery"] = copy.deepcopy(self.spec.delivery)
        status = _status_dict(self.status.conditions, self.status.observed_generation)
        if self.status.subscriber_uri:
            status["subscriberUri"] = self.status.subscriber_uri
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": spec,
            "status": status,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Trigger":
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        return cls(
            metadata=ObjectMeta.from_dict(data["metadata"]),
            spec=TriggerSpec(
                broker=str(spec.get("broker", "default")),
                subscriber=Destination.from_dict(spec.get("subscriber") or {}),
                filter=dict((spec.get("filter") or {}).get("attributes") or {}),
                delivery=spec.get("delivery"),
            ),
            status=TriggerStatus(
                conditions=_conditions_from(status),
                observed_generation=int(status.get("observedGeneration", 0)),
                subscriber_uri=status.get("subscriberUri"),
            ),
        )


# ----------------------------------------------------------------------
# Subscription
# ----------------------------------------------------------------------
@dataclass
class SubscriptionSpec:
    channel: ObjectReference
    subscriber_uri: str
    reply: Optional[ObjectReference] = None
    delivery: Optional[Dict[str, Any]] = None


@dataclass
class SubscriptionStatus:
    conditions: List[Condition] = field(default_factory=list)
    observed_generation: int = 0


@dataclass
class Subscription(StoredObject):
    metadata: ObjectMeta
    spec: SubscriptionSpec
    status: SubscriptionStatus = field(default_factory=SubscriptionStatus)
    api_version: str = MESSAGING_API_VERSION
    kind: str = "Subscription"

    def spec_view(self) -> Any:
        return self.spec

    def to_dict(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            "channel": self.spec.channel.to_dict(),
            "subscriber": {"uri": self.spec.subscriber_uri},
        }
        if self.spec.reply is not None:
            spec["reply"] = {"ref": self.spec.reply.to_dict()}
        if self.spec.delivery:
            spec["delivery"] = copy.deepcopy(self.spec.delivery)
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": spec,
            "status": _status_dict(self.status.conditions, self.status.observed_generation),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Subscription":
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        reply = (spec.get("reply") or {}).get("ref")
        return cls(
            metadata=ObjectMeta.from_dict(data["metadata"]),
            spec=SubscriptionSpec(
                channel=ObjectReference.from_dict(spec["channel"]),
                subscriber_uri=str((spec.get("subscriber") or {}).get("uri", "")),
                reply=ObjectReference.from_dict(reply) if reply else None,
                delivery=spec.get("delivery"),
            ),
            status=SubscriptionStatus(
                conditions=_conditions_from(status),
                observed_generation=int(status.get("observedGeneration", 0)),
            ),
        )


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------
def make_trigger_channel(broker: Broker) -> Unstructured:
    """The channel every trigger of ``broker`` subscribes to."""

    template = broker.spec.channel_template
    if template is None:
        raise ValueError("Broker.Spec.ChannelTemplate is nil")
    metadata = ObjectMeta(
        name=trigger_channel_name(broker.metadata.name),
        namespace=broker.metadata.namespace,
        labels={
            BROKER_LABEL: broker.metadata.name,
            BROKER_EVERYTHING_LABEL: "true",
        },
        owner_references=[broker.owner_reference()],
    )
    return Unstructured(
        api_version=template.api_version,
        kind=template.kind,
        metadata=metadata,
        body={"spec": copy.deepcopy(template.spec)},
    )


def broker_address(broker: Broker, config: ControllerConfig) -> str:
    host = config.service_host(config.ingress_service, config.system_namespace)
    return f"{config.scheme}://{host}/{broker.metadata.namespace}/{broker.metadata.name}"


def filter_subscriber_uri(trigger: Trigger, config: ControllerConfig) -> str:
    host = config.service_host(config.filter_service, config.system_namespace)
    meta = trigger.metadata
    return f"{config.scheme}://{host}/triggers/{meta.namespace}/{meta.name}/{meta.uid}"


def make_subscription(
    trigger: Trigger,
    channel: ObjectReference,
    broker: ObjectReference,
    subscriber_uri: str,
) -> Subscription:
    """Desired Subscription wiring ``channel`` to ``subscriber_uri`` for ``trigger``."""

    meta = trigger.metadata
    return Subscription(
        metadata=ObjectMeta(
            name=subscription_name(trigger.spec.broker, meta.name, meta.uid),
            namespace=meta.namespace,
            labels={
                BROKER_LABEL: trigger.spec.broker,
                TRIGGER_LABEL: meta.name,
            },
            owner_references=[trigger.owner_reference()],
        ),
        spec=SubscriptionSpec(
            channel=ObjectReference(
                api_version=channel.api_version,
                kind=channel.kind,
                name=channel.name,
            ),
            subscriber_uri=subscriber_uri,
            reply=ObjectReference(
                api_version=broker.api_version,
                kind=broker.kind,
                name=broker.name,
                namespace=broker.namespace,
            ),
            delivery=copy.deepcopy(trigger.spec.delivery),
        ),
    )
