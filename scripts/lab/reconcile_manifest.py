#!/usr/bin/env python3
"""Reconcile a manifest once in memory and print the resulting statuses."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from threading import Event
from typing import Any, Dict, List

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from broker_agent.controller import Controller  # noqa: E402
from broker_agent.watchers import FileManifestWatcher  # noqa: E402
from eventing_api import InMemoryObjectStore, LoggingEventSink  # noqa: E402
from mtbroker import BROKER_KIND, TRIGGER_KIND, build_reconcilers  # noqa: E402
from mtbroker.config import ControllerConfig  # noqa: E402

LOG = logging.getLogger(__name__)


class ValidationError(RuntimeError):
    pass


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--manifest",
        type=Path,
        required=True,
        help="Path to the JSON manifest ({\"objects\": [...]})",
    )
    parser.add_argument(
        "--system-namespace",
        default="knative-eventing",
        help="Namespace hosting the broker filter and ingress services",
    )
    parser.add_argument(
        "--max-passes",
        type=int,
        default=10,
        help="Stop after this many queue drains even if work remains",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Exit non-zero unless every broker and trigger is Ready",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def summarize(store: InMemoryObjectStore) -> List[Dict[str, Any]]:
    summary = []
    for kind in (BROKER_KIND, TRIGGER_KIND):
        for obj in store.list(kind):
            summary.append({
                "kind": obj.kind,
                "namespace": obj.metadata.namespace,
                "name": obj.metadata.name,
                "status": obj.to_dict()["status"],
            })
    return summary


def check_ready(summary: List[Dict[str, Any]]) -> None:
    for entry in summary:
        conditions = entry["status"].get("conditions", [])
        ready = next((c for c in conditions if c["type"] == "Ready"), None)
        if ready is None or ready["status"] != "True":
            reason = ready.get("reason", "") if ready else "no Ready condition"
            raise ValidationError(
                f"{entry['kind']} {entry['namespace']}/{entry['name']} is not ready: {reason}"
            )


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.manifest.exists():
        raise SystemExit(f"manifest not found: {args.manifest}")

    store = InMemoryObjectStore()
    config = ControllerConfig(system_namespace=args.system_namespace)
    stop_event = Event()
    controller = Controller(build_reconcilers(store, LoggingEventSink(), config), store, stop_event)
    watcher = FileManifestWatcher(store, controller, args.manifest, 1.0, stop_event)

    watcher.poll()
    for _ in range(args.max_passes):
        if not controller.process_pending():
            break
    else:
        LOG.warning("work still queued after %d passes", args.max_passes)

    summary = summarize(store)
    print(json.dumps(summary, indent=2))
    if args.check:
        check_ready(summary)


if __name__ == "__main__":
    try:
        main()
    except ValidationError as exc:
        print(f"[reconcile_manifest] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
