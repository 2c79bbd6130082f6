"""Resolve a :class:`~mtbroker.resources.Destination` to an absolute URI."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin, urlsplit

from eventing_api.duck import DuckRegistry
from eventing_api.errors import NotFoundError, StoreError
from eventing_api.objects import ObjectKey
from eventing_api.store import ObjectStore

from .context import ReconcileContext, background
from .resources import Destination
from .tracker import Tracker

LOG = logging.getLogger(__name__)


class ResolveError(Exception):
    """Base class for destination resolution failures."""


class InvalidDestination(ResolveError):
    """Neither a usable URI nor a reference was given."""


class AddressNotFound(ResolveError):
    """The referenced object does not exist."""


class AddressUnresolved(ResolveError):
    """The referenced object exists but exposes no usable address (yet)."""


@dataclass(frozen=True)
class Resolution:
    uri: str
    tracked: Optional[ObjectKey] = None


def is_absolute(uri: str) -> bool:
    parts = urlsplit(uri)
    return bool(parts.scheme) and bool(parts.netloc)


class AddressResolver:
    def __init__(self, store: ObjectStore, registry: DuckRegistry, tracker: Tracker) -> None:
        self._store = store
        self._registry = registry
        self._tracker = tracker

    def resolve(
        self,
        destination: Destination,
        namespace: str,
        dependent: ObjectKey,
        ctx: Optional[ReconcileContext] = None,
    ) -> Resolution:
        """Return the URI ``destination`` points at.

        A reference without a namespace is looked up in ``namespace``; it is
        tracked on behalf of ``dependent``.  A relative ``uri`` next to a
        reference is joined onto the referenced object's address.
        """

        ctx = ctx or background()
        if destination.ref is None:
            if not destination.uri:
                raise InvalidDestination("destination missing Ref and URI, expected at least one")
            if not is_absolute(destination.uri):
                raise InvalidDestination(
                    f"URI is not absolute (both scheme and host should be non-empty): {destination.uri!r}"
                )
            return Resolution(destination.uri)

        ref = destination.ref
        key = self._tracker.track(ref.key(namespace), dependent)
        ctx.check()
        try:
            obj = self._store.get(key.group_kind, key.namespace, key.name)
        except NotFoundError as exc:
            raise AddressNotFound(f"failed to get ref {ref}: {exc}") from exc
        except StoreError as exc:
            raise AddressUnresolved(f"failed to get ref {ref}: {exc}") from exc

        adapter = self._registry.addressable(key.group_kind)
        if adapter is None:
            raise AddressUnresolved(f"{key.group_kind} does not expose an address")
        base = adapter.get_address(obj)
        if not base:
            raise AddressUnresolved(f"address not set for {ref}")
        if not urlsplit(base).netloc:
            raise AddressUnresolved(f"missing hostname in address of {ref}")

        if destination.uri:
            resolved = urljoin(base, destination.uri)
            LOG.debug("resolved %s + %r to %s", key, destination.uri, resolved)
            return Resolution(resolved, key)
        return Resolution(base, key)
