import pytest

from builders import RecordingEventSink, make_config
from eventing_api.store import InMemoryObjectStore


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def config():
    return make_config(
        addressable_kinds=("Sink.example.dev",),
        conditionable_kinds=("CronJobSource.sources.knative.dev",),
    )
