"""YAML configuration loader for the broker agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import yaml

from mtbroker.config import ControllerConfig, get_cluster_domain_name


@dataclass
class WatcherConfig:
    type: str
    path: Path
    interval: float = 5.0


@dataclass
class RuntimeConfig:
    max_retries: int = 5
    reconcile_timeout: Optional[float] = 30.0
    interval: float = 1.0


@dataclass
class AgentConfig:
    controller: ControllerConfig
    watchers: Sequence[WatcherConfig] = field(default_factory=list)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)


def _parse_kinds(section: dict, key: str) -> Sequence[str]:
    kinds = section.get(key, [])
    if not isinstance(kinds, list):
        raise ValueError(f"'{key}' must be a list of Kind.group identifiers")
    return tuple(str(kind) for kind in kinds)


def _parse_controller(section: dict) -> ControllerConfig:
    defaults = ControllerConfig()
    cluster_domain = section.get("cluster_domain")
    if cluster_domain is None:
        cluster_domain = get_cluster_domain_name()

    return ControllerConfig(
        system_namespace=str(section.get("system_namespace", defaults.system_namespace)),
        cluster_domain=str(cluster_domain),
        ingress_service=str(section.get("ingress_service", defaults.ingress_service)),
        filter_service=str(section.get("filter_service", defaults.filter_service)),
        scheme=str(section.get("scheme", defaults.scheme)),
        finalizer=str(section.get("finalizer", defaults.finalizer)),
        subscriber_via_filter=bool(section.get("subscriber_via_filter", False)),
        addressable_kinds=_parse_kinds(section, "addressable_kinds"),
        conditionable_kinds=_parse_kinds(section, "conditionable_kinds"),
    )


def _parse_runtime(section: dict) -> RuntimeConfig:
    timeout = section.get("reconcile_timeout", 30.0)
    max_retries = int(section.get("max_retries", 5))
    if max_retries < 1:
        raise ValueError("'max_retries' must be at least 1")
    return RuntimeConfig(
        max_retries=max_retries,
        reconcile_timeout=float(timeout) if timeout is not None else None,
        interval=float(section.get("interval", 1.0)),
    )


def _parse_watchers(entries: Iterable[dict]) -> List[WatcherConfig]:
    watchers: List[WatcherConfig] = []
    for entry in entries:
        watchers.append(
            WatcherConfig(
                type=str(entry["type"]),
                path=Path(entry.get("path", ".")),
                interval=float(entry.get("interval", entry.get("poll_interval", 5.0))),
            )
        )
    return watchers


def load_config(path: Path) -> AgentConfig:
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    controller_section = data.get("controller")
    if controller_section is None:
        raise ValueError("Configuration missing 'controller' section")
    if not isinstance(controller_section, dict):
        raise ValueError("'controller' section must be a mapping")
    controller = _parse_controller(controller_section)

    runtime_section = data.get("runtime", {})
    if not isinstance(runtime_section, dict):
        raise ValueError("'runtime' section must be a mapping")
    runtime = _parse_runtime(runtime_section)

    watchers_section = data.get("watchers", [])
    if not isinstance(watchers_section, list):
        raise ValueError("'watchers' section must be a list")
    watchers = _parse_watchers(watchers_section)

    return AgentConfig(controller=controller, watchers=watchers, runtime=runtime)
