"""Duck-type capability registry.

Resolving a destination or a dependency needs to read an "address" or a
"Ready condition" from objects of arbitrary kinds.  Rather than probing
whatever fields happen to be present, each kind that offers a capability is
registered explicitly at startup with an adapter that knows its schema.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from .objects import Condition, StoredObject


def _as_dict(obj: StoredObject) -> Mapping[str, Any]:
    return obj.to_dict()  # type: ignore[attr-defined]


class Addressable(ABC):
    """Capability: expose a resolvable URL."""

    @abstractmethod
    def get_address(self, obj: StoredObject) -> Optional[str]:
        """Return the object's URL, or ``None`` while it has no address."""


class Conditionable(ABC):
    """Capability: expose a Ready condition and an observed generation."""

    @abstractmethod
    def get_ready_condition(self, obj: StoredObject) -> Optional[Condition]:
        """Return the object's Ready condition if it reports one."""

    @abstractmethod
    def get_observed_generation(self, obj: StoredObject) -> int:
        """Return the generation the object's controller last finished."""


class StatusAddressable(Addressable):
    """``status.address.url``, falling back to ``status.address.hostname``."""

    def __init__(self, scheme: str = "http") -> None:
        self._scheme = scheme

    def get_address(self, obj):
        address = (_as_dict(obj).get("status") or {}).get("address") or {}
        url = address.get("url")
        if url:
            return str(url)
        hostname = address.get("hostname")
        if hostname:
            return f"{self._scheme}://{hostname}"
        return None


class ServiceAddressable(Addressable):
    """Plain network services only have a name; synthesize their cluster URL."""

    def __init__(self, cluster_domain: str, scheme: str = "http") -> None:
        self._cluster_domain = cluster_domain
        self._scheme = scheme

    def get_address(self, obj):
        meta = obj.metadata
        return f"{self._scheme}://{meta.name}.{meta.namespace}.svc.{self._cluster_domain}/"


class StatusConditions(Conditionable):
    """``status.conditions`` / ``status.observedGeneration``."""

    def __init__(self, condition_type: str = "Ready") -> None:
        self._type = condition_type

    def get_ready_condition(self, obj):
        status = _as_dict(obj).get("status") or {}
        for raw in status.get("conditions") or []:
            if raw.get("type") == self._type:
                return Condition.from_dict(raw)
        return None

    def get_observed_generation(self, obj):
        status = _as_dict(obj).get("status") or {}
        return int(status.get("observedGeneration", 0))


class DuckRegistry:
    """Map ``Kind.group`` identifiers to capability adapters."""

    def __init__(self) -> None:
        self._addressables: Dict[str, Addressable] = {}
        self._conditionables: Dict[str, Conditionable] = {}

    def register_addressable(self, group_kind: str, adapter: Addressable) -> None:
        if group_kind in self._addressables:
            raise ValueError(f"addressable '{group_kind}' already registered")
        self._addressables[group_kind] = adapter

    def register_conditionable(self, group_kind: str, adapter: Conditionable) -> None:
        if group_kind in self._conditionables:
            raise ValueError(f"conditionable '{group_kind}' already registered")
        self._conditionables[group_kind] = adapter

    def unregister(self, group_kind: str) -> None:
        self._addressables.pop(group_kind, None)
        self._conditionables.pop(group_kind, None)

    def addressable(self, group_kind: str) -> Optional[Addressable]:
        return self._addressables.get(group_kind)

    def conditionable(self, group_kind: str) -> Optional[Conditionable]:
        return self._conditionables.get(group_kind)
