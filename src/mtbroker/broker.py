"""Broker reconciliation: finalizer, trigger channel, shared services and address."""

from __future__ import annotations

import logging
from typing import List, Optional

from eventing_api.duck import DuckRegistry
from eventing_api.errors import NotFoundError, StoreError
from eventing_api.events import EventSink
from eventing_api.objects import ObjectKey, ObjectReference, group_kind
from eventing_api.store import ObjectStore

from .conditions import (
    ADDRESSABLE,
    BROKER_CONDITIONS,
    FILTER_READY,
    INGRESS_READY,
    TRIGGER_CHANNEL,
)
from .config import ControllerConfig
from .context import ReconcileContext, background
from .errors import OwnershipConflictError, PermanentError, ReconcileCancelled, ReconcileError
from .resources import EVENTING_API_VERSION, Broker, broker_address, make_trigger_channel
from .tracker import Tracker

LOG = logging.getLogger(__name__)

BROKER_KIND = group_kind(EVENTING_API_VERSION, "Broker")
ENDPOINTS_KIND = "Endpoints"

CHANNEL_TEMPLATE_FAILED = "ChannelTemplateFailed"
CHANNEL_FAILURE = "ChannelFailure"
NO_ADDRESS = "NoAddress"
ENDPOINTS_UNAVAILABLE = "EndpointsUnavailable"
SERVICE_FAILURE = "ServiceFailure"

BROKER_RECONCILED = "BrokerReconciled"
FINALIZER_UPDATE = "FinalizerUpdate"
INTERNAL_ERROR = "InternalError"
UPDATE_FAILED = "UpdateFailed"


class BrokerReconciler:
    """Provision a broker's trigger channel and derive its readiness.

    The broker holds a finalizer while it exists; on deletion nothing needs
    cleaning up beyond what owner references cascade, so the finalizer is
    simply dropped.
    """

    def __init__(
        self,
        store: ObjectStore,
        events: EventSink,
        tracker: Tracker,
        registry: DuckRegistry,
        config: ControllerConfig,
    ) -> None:
        self._store = store
        self._events = events
        self._tracker = tracker
        self._registry = registry
        self._config = config

    def reconcile(self, namespace: str, name: str, ctx: Optional[ReconcileContext] = None) -> Optional[Broker]:
        ctx = ctx or background()
        ctx.check()
        try:
            original = self._store.get(BROKER_KIND, namespace, name)
        except NotFoundError:
            LOG.debug("Broker %s/%s no longer exists", namespace, name)
            self._tracker.untrack(ObjectKey(BROKER_KIND, namespace, name))
            return None
        except StoreError as exc:
            raise ReconcileError(str(exc)) from exc

        if original.metadata.deletion_timestamp:
            self._finalize(original, ctx)
            return None

        original = self._ensure_finalizer(original, ctx)

        broker = original.copy()
        error: Optional[ReconcileError] = None
        try:
            self._reconcile_kind(broker, ctx)
        except ReconcileCancelled:
            raise
        except ReconcileError as exc:
            error = exc
            self._events.warning(INTERNAL_ERROR, str(exc))

        self._update_status(original, broker, ctx)
        if error is not None:
            raise error
        return broker

    # ------------------------------------------------------------------
    # Finalizer
    # ------------------------------------------------------------------
    def _ensure_finalizer(self, broker: Broker, ctx: ReconcileContext) -> Broker:
        finalizer = self._config.finalizer
        if finalizer in broker.metadata.finalizers:
            return broker
        return self._patch_finalizers(broker, broker.metadata.finalizers + [finalizer], ctx)

    def _finalize(self, broker: Broker, ctx: ReconcileContext) -> None:
        meta = broker.metadata
        if self._config.finalizer in meta.finalizers:
            remaining = [f for f in meta.finalizers if f != self._config.finalizer]
            self._patch_finalizers(broker, remaining, ctx)
        self._tracker.untrack(broker.key)
        self._events.normal(BROKER_RECONCILED, f'Broker reconciled: "{meta.namespace}/{meta.name}"')

    def _patch_finalizers(self, broker: Broker, finalizers: List[str], ctx: ReconcileContext) -> Broker:
        meta = broker.metadata
        patch = {"metadata": {"finalizers": finalizers, "resourceVersion": meta.resource_version}}
        ctx.check()
        try:
            patched = self._store.patch(BROKER_KIND, meta.namespace, meta.name, patch)
        except StoreError as exc:
            self._events.warning(INTERNAL_ERROR, f"Failed to update finalizers for {meta.name!r}: {exc}")
            raise ReconcileError(str(exc)) from exc
        LOG.info("Patched finalizers of broker %s/%s to %s", meta.namespace, meta.name, finalizers)
        self._events.normal(FINALIZER_UPDATE, f'Updated "{meta.name}" finalizers')
        return patched

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def _reconcile_kind(self, broker: Broker, ctx: ReconcileContext) -> None:
        conditions = broker.status.conditions
        BROKER_CONDITIONS.initialize(conditions)
        broker.status.observed_generation = broker.metadata.generation

        if broker.spec.channel_template is None:
            BROKER_CONDITIONS.mark_false(
                conditions,
                TRIGGER_CHANNEL,
                CHANNEL_TEMPLATE_FAILED,
                "Error on setting up the ChannelTemplate: Broker.Spec.ChannelTemplate is nil",
            )
            raise PermanentError("Broker.Spec.ChannelTemplate is nil")

        channel = self._reconcile_channel(broker, ctx)
        adapter = self._registry.addressable(channel.group_kind)
        address = adapter.get_address(channel) if adapter is not None else None
        if not address:
            LOG.debug("Trigger channel %s has no address yet", channel.key)
            BROKER_CONDITIONS.mark_false(conditions, TRIGGER_CHANNEL, NO_ADDRESS, "Channel does not have an address.")
            return

        BROKER_CONDITIONS.mark_true(conditions, TRIGGER_CHANNEL)
        broker.status.trigger_channel = ObjectReference(
            api_version=channel.api_version,
            kind=channel.kind,
            name=channel.metadata.name,
            namespace=channel.metadata.namespace,
        )

        errors: List[ReconcileError] = []
        for type_, service in ((FILTER_READY, self._config.filter_service),
                               (INGRESS_READY, self._config.ingress_service)):
            try:
                self._check_endpoints(broker, type_, service, ctx)
            except ReconcileCancelled:
                raise
            except ReconcileError as exc:
                errors.append(exc)

        broker.status.address = broker_address(broker, self._config)
        BROKER_CONDITIONS.mark_true(conditions, ADDRESSABLE)

        if errors:
            raise errors[0]

    def _reconcile_channel(self, broker: Broker, ctx: ReconcileContext):
        conditions = broker.status.conditions
        expected = make_trigger_channel(broker)
        key = self._tracker.track(expected.key, broker.key)

        ctx.check()
        try:
            channel = self._store.get(key.group_kind, key.namespace, key.name)
        except NotFoundError:
            channel = None
        except StoreError as exc:
            BROKER_CONDITIONS.mark_false(conditions, TRIGGER_CHANNEL, CHANNEL_FAILURE, str(exc))
            raise ReconcileError(f"Failed to reconcile trigger channel: {exc}") from exc

        if channel is None:
            ctx.check()
            try:
                channel = self._store.create(expected)
            except StoreError as exc:
                BROKER_CONDITIONS.mark_false(conditions, TRIGGER_CHANNEL, CHANNEL_FAILURE, str(exc))
                raise ReconcileError(f"Failed to reconcile trigger channel: {exc}") from exc
            LOG.info("Created trigger channel %s", key)
            return channel

        if not channel.metadata.is_controlled_by(broker.metadata):
            message = f'broker "{broker.metadata.name}" does not own channel "{key.name}"'
            BROKER_CONDITIONS.mark_false(conditions, TRIGGER_CHANNEL, CHANNEL_FAILURE, message)
            raise OwnershipConflictError(message)
        return channel

    def _check_endpoints(self, broker: Broker, type_: str, service: str, ctx: ReconcileContext) -> None:
        conditions = broker.status.conditions
        namespace = self._config.system_namespace
        key = self._tracker.track(ObjectKey(ENDPOINTS_KIND, namespace, service), broker.key)

        ctx.check()
        try:
            endpoints = self._store.get(key.group_kind, key.namespace, key.name)
        except NotFoundError:
            BROKER_CONDITIONS.mark_false(
                conditions, type_, ENDPOINTS_UNAVAILABLE, f'Endpoints "{service}" are unavailable.'
            )
            return
        except StoreError as exc:
            BROKER_CONDITIONS.mark_false(conditions, type_, SERVICE_FAILURE, str(exc))
            raise ReconcileError(f"Failed to get endpoints {namespace}/{service}: {exc}") from exc

        if endpoints.addresses:
            BROKER_CONDITIONS.mark_true(conditions, type_)
        else:
            BROKER_CONDITIONS.mark_false(
                conditions, type_, ENDPOINTS_UNAVAILABLE, f'Endpoints "{service}" are unavailable.'
            )

    def _update_status(self, original: Broker, broker: Broker, ctx: ReconcileContext) -> None:
        if broker.status == original.status:
            LOG.debug("Broker %s/%s status unchanged", broker.metadata.namespace, broker.metadata.name)
            return
        ctx.check()
        try:
            self._store.update_status(broker)
        except StoreError as exc:
            self._events.warning(UPDATE_FAILED, f'Failed to update status for "{broker.metadata.name}": {exc}')
            raise ReconcileError(f"Failed to update status for {broker.metadata.name!r}: {exc}") from exc
