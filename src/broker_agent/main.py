"""Entry point for the standalone broker agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event

from oslo_config import cfg

from eventing_api import InMemoryObjectStore, LoggingEventSink
from mtbroker import build_reconcilers

from .config import load_config
from .config_extensions import apply_overrides, register_broker_opts
from .controller import Controller
from .watchers import FileManifestWatcher

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the multi-tenant broker agent")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/mt-broker/agent.yaml"),
        help="Path to the agent configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args, remaining = parser.parse_known_args(argv)
    _setup_logging(args.verbose)

    register_broker_opts(cfg.CONF)
    cfg.CONF(args=remaining, project="mt-broker-agent", default_config_files=[])

    config = load_config(args.config)
    controller_config = apply_overrides(cfg.CONF, config.controller)
    LOG.info(
        "using system namespace %s and cluster domain %s",
        controller_config.system_namespace,
        controller_config.cluster_domain,
    )

    store = InMemoryObjectStore()
    reconcilers = build_reconcilers(store, LoggingEventSink(), controller_config)

    stop_event = Event()
    controller = Controller(
        reconcilers,
        store,
        stop_event,
        max_retries=config.runtime.max_retries,
        timeout=config.runtime.reconcile_timeout,
        interval=config.runtime.interval,
    )

    watchers = []
    for watcher_cfg in config.watchers:
        if watcher_cfg.type == "file":
            watcher = FileManifestWatcher(
                store=store,
                controller=controller,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
            )
        else:
            raise ValueError(f"unsupported watcher type '{watcher_cfg.type}'")
        # Perform an initial poll so we react immediately
        try:
            watcher.poll()
        except Exception:  # pragma: no cover - logged inside watcher
            LOG.exception("initial poll failed for watcher %s", watcher_cfg.path)
        watcher.start()
        watchers.append(watcher)

    if not watchers:
        LOG.warning("no watchers configured; agent will idle")

    controller.start()

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    for watcher in watchers:
        watcher.join()
    controller.join()

    LOG.info("broker agent stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
