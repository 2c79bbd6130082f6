from eventing_api.objects import ObjectKey
from mtbroker.tracker import Tracker

SINK = ObjectKey("Service", "ns", "sink")
BROKER = ObjectKey("Broker.eventing.knative.dev", "ns", "default")
T1 = ObjectKey("Trigger.eventing.knative.dev", "ns", "t1")
T2 = ObjectKey("Trigger.eventing.knative.dev", "ns", "t2")


def test_track_returns_reference():
    tracker = Tracker()

    assert tracker.track(SINK, T1) == SINK
    assert tracker.dependents_of(SINK) == {T1}


def test_multiple_dependents():
    tracker = Tracker()
    tracker.track(SINK, T1)
    tracker.track(SINK, T2)
    tracker.track(SINK, T1)

    assert tracker.dependents_of(SINK) == {T1, T2}
    assert tracker.dependents_of(BROKER) == set()


def test_untrack_forgets_every_reference():
    tracker = Tracker()
    tracker.track(SINK, T1)
    tracker.track(BROKER, T1)
    tracker.track(BROKER, T2)

    tracker.untrack(T1)

    assert tracker.dependents_of(SINK) == set()
    assert tracker.dependents_of(BROKER) == {T2}
    assert len(tracker) == 1


def test_dependents_of_returns_a_copy():
    tracker = Tracker()
    tracker.track(SINK, T1)

    tracker.dependents_of(SINK).add(T2)

    assert tracker.dependents_of(SINK) == {T1}
