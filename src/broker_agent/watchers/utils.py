from __future__ import annotations

from typing import Any, Callable, Dict, Mapping

from eventing_api.objects import Endpoints, ObjectKey, StoredObject, Unstructured, group_kind

from mtbroker.resources import Broker, Subscription, Trigger

_LOADERS: Dict[str, Callable[[Mapping[str, Any]], StoredObject]] = {
    "Broker.eventing.knative.dev": Broker.from_dict,
    "Trigger.eventing.knative.dev": Trigger.from_dict,
    "Subscription.messaging.knative.dev": Subscription.from_dict,
    "Endpoints": Endpoints.from_dict,
}


def object_key(raw: Mapping[str, Any]) -> ObjectKey:
    for field_name in ("apiVersion", "kind", "metadata"):
        if not raw.get(field_name):
            raise ValueError(f"manifest object missing '{field_name}'")
    metadata = raw["metadata"]
    if not metadata.get("name"):
        raise ValueError("manifest object missing 'metadata.name'")
    return ObjectKey(
        group_kind(str(raw["apiVersion"]), str(raw["kind"])),
        str(metadata.get("namespace", "")),
        str(metadata["name"]),
    )


def load_object(raw: Mapping[str, Any]) -> StoredObject:
    """Build the typed object for ``raw``; unknown kinds stay unstructured."""

    loader = _LOADERS.get(object_key(raw).group_kind, Unstructured.from_dict)
    try:
        return loader(raw)
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed {raw.get('kind')} manifest: {exc}") from exc
