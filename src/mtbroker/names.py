"""Deterministic names for control-owned children."""

from __future__ import annotations

import hashlib

# DNS-1123 label limit enforced by the store for object names.
MAX_NAME_LENGTH = 63
_DIGEST_LENGTH = 32


def _digest(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def child_name(parent: str, suffix: str) -> str:
    """Return ``parent + suffix``, hashed down to :data:`MAX_NAME_LENGTH`.

    Short inputs are used verbatim so names stay readable.  Longer parents are
    truncated and completed with a digest of the full parent, keeping the
    suffix intact; when even the suffix leaves no room, the whole string is
    replaced by its digest.  The same input always yields the same name.
    """

    if len(parent) + len(suffix) <= MAX_NAME_LENGTH:
        return parent + suffix

    head = MAX_NAME_LENGTH - len(suffix) - _DIGEST_LENGTH
    if head <= 0:
        return _digest(parent + suffix)
    return parent[:head] + _digest(parent) + suffix


def subscription_name(broker: str, trigger: str, trigger_uid: str) -> str:
    return child_name(f"{broker}-{trigger}-", trigger_uid)


def legacy_subscription_name(broker: str, trigger: str) -> str:
    """Name used before the trigger uid became part of the identity."""

    return child_name(f"{broker}-{trigger}", "")


def trigger_channel_name(broker: str) -> str:
    return child_name(broker, "-kne-trigger")
