"""Errors raised by :class:`~eventing_api.store.ObjectStore` implementations."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for object store failures; the message is surfaced verbatim."""


class NotFoundError(StoreError):
    def __init__(self, group_kind: str, name: str) -> None:
        super().__init__(f'{group_kind} "{name}" not found')
        self.group_kind = group_kind
        self.name = name


class AlreadyExistsError(StoreError):
    def __init__(self, group_kind: str, name: str) -> None:
        super().__init__(f'{group_kind} "{name}" already exists')
        self.group_kind = group_kind
        self.name = name


class ConflictError(StoreError):
    """A write was based on a stale ``resourceVersion``."""

    def __init__(self, group_kind: str, name: str) -> None:
        super().__init__(
            f'Operation cannot be fulfilled on {group_kind} "{name}": '
            "the object has been modified; please apply your changes to the latest version"
        )
        self.group_kind = group_kind
        self.name = name
