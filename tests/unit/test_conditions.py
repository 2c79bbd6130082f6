import pytest

from eventing_api.objects import FALSE, TRUE, UNKNOWN, Condition
from mtbroker.conditions import (
    BROKER_CONDITIONS,
    TRIGGER_CONDITIONS,
    ConditionSet,
    get_condition,
    set_condition,
)


def test_initialize_marks_every_dependent_unknown():
    conditions = []

    BROKER_CONDITIONS.initialize(conditions)

    assert [c.type for c in conditions] == [
        "TriggerChannel",
        "FilterReady",
        "IngressReady",
        "Addressable",
        "Ready",
    ]
    assert all(c.status == UNKNOWN for c in conditions)


def test_ready_only_when_every_dependent_is_true():
    conditions = []
    TRIGGER_CONDITIONS.initialize(conditions)

    for type_ in ("BrokerReady", "DependencyReady", "SubscriberResolved"):
        TRIGGER_CONDITIONS.mark_true(conditions, type_)
        assert get_condition(conditions, "Ready").status == UNKNOWN

    TRIGGER_CONDITIONS.mark_true(conditions, "Subscribed")

    assert get_condition(conditions, "Ready").status == TRUE
    assert TRIGGER_CONDITIONS.is_ready(conditions)


def test_false_dependent_wins_over_unknown():
    conditions = []
    TRIGGER_CONDITIONS.initialize(conditions)

    TRIGGER_CONDITIONS.mark_unknown(conditions, "BrokerReady", "BrokerUnknown", "pending")
    TRIGGER_CONDITIONS.mark_false(conditions, "Subscribed", "NotSubscribed", "boom")

    ready = get_condition(conditions, "Ready")
    assert ready.status == FALSE
    assert ready.reason == "NotSubscribed"
    assert ready.message == "boom"


def test_ready_recovers_when_dependent_is_fixed():
    sets = ConditionSet("A", "B")
    conditions = []
    sets.initialize(conditions)
    sets.mark_false(conditions, "A", "Broken")
    sets.mark_true(conditions, "B")

    sets.mark_true(conditions, "A")

    assert get_condition(conditions, "Ready") == Condition("Ready", TRUE)


def test_set_condition_preserves_order_and_rejects_bad_status():
    conditions = [Condition("A"), Condition("B")]

    set_condition(conditions, "A", TRUE)

    assert [c.type for c in conditions] == ["A", "B"]
    assert conditions[0].is_true()
    with pytest.raises(ValueError):
        set_condition(conditions, "A", "Maybe")


def test_initialize_keeps_existing_dependents():
    conditions = [Condition("TriggerChannel", FALSE, "NoAddress", "Channel does not have an address.")]

    BROKER_CONDITIONS.initialize(conditions)

    assert get_condition(conditions, "TriggerChannel").reason == "NoAddress"
    assert get_condition(conditions, "Ready").reason == "NoAddress"
