"""Configuration data structures for the broker reconcilers.

These dataclasses describe where the shared broker services live and which
foreign kinds expose duck-typed capabilities, without tying the core to any
particular configuration loader (see :mod:`broker_agent.config`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

LOG = logging.getLogger(__name__)

DEFAULT_CLUSTER_DOMAIN = "cluster.local"
RESOLV_CONF = Path("/etc/resolv.conf")


def get_cluster_domain_name(resolv_conf: Path = RESOLV_CONF) -> str:
    """Derive the cluster domain from the ``search`` line of ``resolv.conf``.

    Pods get a search path such as ``ns.svc.cluster.local svc.cluster.local
    cluster.local``; the domain is whatever follows the first ``svc.`` entry.
    Outside a cluster the default ``cluster.local`` is returned.
    """

    try:
        lines = resolv_conf.read_text().splitlines()
    except OSError:
        return DEFAULT_CLUSTER_DOMAIN

    for line in lines:
        fields = line.split()
        if not fields or fields[0] != "search":
            continue
        for entry in fields[1:]:
            if entry.startswith("svc."):
                return entry[len("svc."):].rstrip(".")
    return DEFAULT_CLUSTER_DOMAIN


@dataclass(frozen=True)
class ControllerConfig:
    """Knobs shared by the broker and trigger reconcilers.

    Attributes
    ----------
    system_namespace:
        Namespace hosting the shared filter and ingress services.
    cluster_domain:
        DNS suffix used when synthesizing in-cluster URLs.
    subscriber_via_filter:
        When set, Subscriptions deliver to the filter service's per-trigger
        path instead of directly to the resolved subscriber URI.
    addressable_kinds / conditionable_kinds:
        Foreign ``Kind.group`` identifiers registered with the generic status
        adapters at startup.
    """

    system_namespace: str = "knative-eventing"
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN
    ingress_service: str = "broker-ingress"
    filter_service: str = "broker-filter"
    scheme: str = "http"
    finalizer: str = "brokers.eventing.knative.dev"
    subscriber_via_filter: bool = False
    addressable_kinds: Sequence[str] = field(default_factory=tuple)
    conditionable_kinds: Sequence[str] = field(default_factory=tuple)

    def service_host(self, service: str, namespace: str) -> str:
        return f"{service}.{namespace}.svc.{self.cluster_domain}"
