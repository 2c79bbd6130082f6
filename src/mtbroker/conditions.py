"""Status condition bookkeeping.

A condition list is an ordered list of :class:`~eventing_api.objects.Condition`
keyed by type.  A :class:`ConditionSet` names the dependent condition types of
one object kind; the happy ``Ready`` condition is recomputed from those
dependents after every change, so it can never disagree with them.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from eventing_api.objects import FALSE, TRUE, UNKNOWN, Condition

READY = "Ready"


def get_condition(conditions: Sequence[Condition], type_: str) -> Optional[Condition]:
    return next((c for c in conditions if c.type == type_), None)


def set_condition(
    conditions: List[Condition],
    type_: str,
    status: str,
    reason: str = "",
    message: str = "",
) -> Condition:
    """Upsert ``type_`` in place; unrelated conditions keep their position."""

    if status not in (TRUE, FALSE, UNKNOWN):
        raise ValueError(f"invalid condition status {status!r}")
    for index, existing in enumerate(conditions):
        if existing.type == type_:
            conditions[index] = Condition(type_, status, reason, message)
            return conditions[index]
    condition = Condition(type_, status, reason, message)
    conditions.append(condition)
    return condition


class ConditionSet:
    """The dependents that make up an object kind's ``Ready`` condition."""

    def __init__(self, *dependents: str, happy: str = READY) -> None:
        self.happy = happy
        self.dependents = tuple(dependents)

    def initialize(self, conditions: List[Condition]) -> None:
        """Add missing dependents as Unknown and derive ``Ready``."""

        for type_ in self.dependents:
            if get_condition(conditions, type_) is None:
                set_condition(conditions, type_, UNKNOWN)
        self._recompute(conditions)

    def mark_true(self, conditions: List[Condition], type_: str) -> None:
        set_condition(conditions, type_, TRUE)
        self._recompute(conditions)

    def mark_false(self, conditions: List[Condition], type_: str, reason: str, message: str = "") -> None:
        set_condition(conditions, type_, FALSE, reason, message)
        self._recompute(conditions)

    def mark_unknown(self, conditions: List[Condition], type_: str, reason: str = "", message: str = "") -> None:
        set_condition(conditions, type_, UNKNOWN, reason, message)
        self._recompute(conditions)

    def is_ready(self, conditions: Sequence[Condition]) -> bool:
        for type_ in self.dependents:
            condition = get_condition(conditions, type_)
            if condition is None or not condition.is_true():
                return False
        return True

    def _recompute(self, conditions: List[Condition]) -> None:
        # False dependents win over Unknown ones; dependents order breaks ties.
        pending = [get_condition(conditions, type_) or Condition(type_) for type_ in self.dependents]
        failed = [c for c in pending if c.is_false()]
        unknown = [c for c in pending if c.status == UNKNOWN]
        if failed:
            set_condition(conditions, self.happy, FALSE, failed[0].reason, failed[0].message)
        elif unknown:
            set_condition(conditions, self.happy, UNKNOWN, unknown[0].reason, unknown[0].message)
        else:
            set_condition(conditions, self.happy, TRUE)


# Broker dependents
TRIGGER_CHANNEL = "TriggerChannel"
FILTER_READY = "FilterReady"
INGRESS_READY = "IngressReady"
ADDRESSABLE = "Addressable"

# Trigger dependents
BROKER_READY = "BrokerReady"
DEPENDENCY_READY = "DependencyReady"
SUBSCRIBER_RESOLVED = "SubscriberResolved"
SUBSCRIBED = "Subscribed"

BROKER_CONDITIONS = ConditionSet(TRIGGER_CHANNEL, FILTER_READY, INGRESS_READY, ADDRESSABLE)
TRIGGER_CONDITIONS = ConditionSet(BROKER_READY, DEPENDENCY_READY, SUBSCRIBER_RESOLVED, SUBSCRIBED)
