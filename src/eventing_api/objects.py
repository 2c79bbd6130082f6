"""Object model shared by the store, the duck registry and the reconcilers.

Only the fields the reconciliation core actually reads are modelled.  Kinds
owned by this project (Broker, Trigger, Subscription) are typed dataclasses in
:mod:`mtbroker.resources`; every foreign kind travels as :class:`Unstructured`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Optional


TRUE = "True"
FALSE = "False"
UNKNOWN = "Unknown"


def group_of(api_version: str) -> str:
    """Return the API group of ``api_version`` (empty for the core group)."""

    if "/" not in api_version:
        return ""
    return api_version.split("/", 1)[0]


def group_kind(api_version: str, kind: str) -> str:
    """Render the ``Kind.group`` identifier the store and registry key on."""

    group = group_of(api_version)
    return f"{kind}.{group}" if group else kind


class ObjectKey(NamedTuple):
    """Identity of a stored object."""

    group_kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.group_kind}:{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ObjectReference:
    """Reference to an object of any kind."""

    api_version: str
    kind: str
    name: str
    namespace: str = ""

    @property
    def group_kind(self) -> str:
        return group_kind(self.api_version, self.kind)

    def key(self, default_namespace: str = "") -> ObjectKey:
        return ObjectKey(self.group_kind, self.namespace or default_namespace, self.name)

    def to_dict(self) -> Dict[str, str]:
        data = {"apiVersion": self.api_version, "kind": self.kind, "name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ObjectReference":
        return cls(
            api_version=str(data.get("apiVersion", "")),
            kind=str(data.get("kind", "")),
            name=str(data.get("name", "")),
            namespace=str(data.get("namespace", "")),
        )

    def __str__(self) -> str:
        return f"{self.kind}.{self.api_version} {self.namespace}/{self.name}"


@dataclass(frozen=True)
class OwnerReference:
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OwnerReference":
        return cls(
            api_version=str(data.get("apiVersion", "")),
            kind=str(data.get("kind", "")),
            name=str(data.get("name", "")),
            uid=str(data.get("uid", "")),
            controller=bool(data.get("controller", False)),
            block_owner_deletion=bool(data.get("blockOwnerDeletion", False)),
        )


@dataclass
class ObjectMeta:
    name: str
    namespace: str = ""
    uid: str = ""
    generation: int = 0
    resource_version: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    owner_references: List[OwnerReference] = field(default_factory=list)
    finalizers: List[str] = field(default_factory=list)
    deletion_timestamp: Optional[str] = None

    def controller_ref(self) -> Optional[OwnerReference]:
        return next((ref for ref in self.owner_references if ref.controller), None)

    def is_controlled_by(self, owner: "ObjectMeta") -> bool:
        """The sole ownership test: a controller reference carrying ``owner``'s uid."""

        ref = self.controller_ref()
        return ref is not None and ref.uid == owner.uid

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.namespace:
            data["namespace"] = self.namespace
        if self.uid:
            data["uid"] = self.uid
        if self.generation:
            data["generation"] = self.generation
        if self.resource_version:
            data["resourceVersion"] = self.resource_version
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        if self.owner_references:
            data["ownerReferences"] = [ref.to_dict() for ref in self.owner_references]
        if self.finalizers:
            data["finalizers"] = list(self.finalizers)
        if self.deletion_timestamp:
            data["deletionTimestamp"] = self.deletion_timestamp
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ObjectMeta":
        return cls(
            name=str(data["name"]),
            namespace=str(data.get("namespace", "")),
            uid=str(data.get("uid", "")),
            generation=int(data.get("generation", 0)),
            resource_version=str(data.get("resourceVersion", "")),
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            owner_references=[
                OwnerReference.from_dict(ref) for ref in data.get("ownerReferences") or []
            ],
            finalizers=list(data.get("finalizers") or []),
            deletion_timestamp=data.get("deletionTimestamp"),
        )


@dataclass
class Condition:
    type: str
    status: str = UNKNOWN
    reason: str = ""
    message: str = ""

    def is_true(self) -> bool:
        return self.status == TRUE

    def is_false(self) -> bool:
        return self.status == FALSE

    def to_dict(self) -> Dict[str, str]:
        data = {"type": self.type, "status": self.status}
        if self.reason:
            data["reason"] = self.reason
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        return cls(
            type=str(data["type"]),
            status=str(data.get("status", UNKNOWN)),
            reason=str(data.get("reason", "")),
            message=str(data.get("message", "")),
        )


class StoredObject:
    """Mixin for everything the store holds."""

    api_version: str
    kind: str
    metadata: ObjectMeta

    @property
    def group_kind(self) -> str:
        return group_kind(self.api_version, self.kind)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.group_kind, self.metadata.namespace, self.metadata.name)

    def reference(self) -> ObjectReference:
        return ObjectReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            namespace=self.metadata.namespace,
        )

    def owner_reference(self) -> OwnerReference:
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            uid=self.metadata.uid,
        )

    def spec_view(self) -> Any:
        """Everything except metadata and status; used to detect spec changes."""

        raise NotImplementedError

    def copy(self):
        return copy.deepcopy(self)


@dataclass
class Unstructured(StoredObject):
    """Any object whose schema this project does not own."""

    api_version: str
    kind: str
    metadata: ObjectMeta
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> Dict[str, Any]:
        return self.body.get("status") or {}

    def spec_view(self) -> Any:
        return {k: v for k, v in self.body.items() if k != "status"}

    def to_dict(self) -> Dict[str, Any]:
        data = {"apiVersion": self.api_version, "kind": self.kind, "metadata": self.metadata.to_dict()}
        data.update(copy.deepcopy(self.body))
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Unstructured":
        body = {k: copy.deepcopy(v) for k, v in data.items()
                if k not in ("apiVersion", "kind", "metadata")}
        return cls(
            api_version=str(data["apiVersion"]),
            kind=str(data["kind"]),
            metadata=ObjectMeta.from_dict(data["metadata"]),
            body=body,
        )


@dataclass
class Endpoints(StoredObject):
    """Backing addresses of a service; ready iff at least one is present."""

    metadata: ObjectMeta
    addresses: List[str] = field(default_factory=list)
    api_version: str = "v1"
    kind: str = "Endpoints"

    def spec_view(self) -> Any:
        return list(self.addresses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "subsets": [{"addresses": [{"ip": ip} for ip in self.addresses]}],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Endpoints":
        addresses: List[str] = []
        for subset in data.get("subsets") or []:
            for address in subset.get("addresses") or []:
                addresses.append(str(address.get("ip", "")))
        return cls(metadata=ObjectMeta.from_dict(data["metadata"]), addresses=addresses)
