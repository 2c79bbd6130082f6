"""Watcher implementations used by the broker agent."""

from .file import FileManifestWatcher  # noqa: F401

__all__ = ["FileManifestWatcher"]
