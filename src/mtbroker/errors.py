"""Errors returned (raised) by a reconciliation pass."""

from __future__ import annotations


class ReconcileError(Exception):
    """A pass finished with an error; status has already been written.

    ``retryable`` tells the scheduler whether requeueing can help.
    """

    retryable = True


class PermanentError(ReconcileError):
    """The object's spec is invalid; retries fail the same way until it is edited."""


class OwnershipConflictError(ReconcileError):
    """A child with the expected name is controlled by someone else.

    Not requeued by the scheduler; a change to the trigger or to the child
    starts a fresh pass through the watch path.
    """

    retryable = False


class ReconcileCancelled(ReconcileError):
    """The pass hit its deadline or was cancelled between two store calls."""
