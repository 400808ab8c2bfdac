"""Fixtures for unit tests: a steppable clock, the in-memory store, an event list."""

from __future__ import annotations

import pytest

from picket.core.brokers.memory import InMemoryJobStore
from picket.core.events import MemoryEventSink
from tests.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryJobStore:
    return InMemoryJobStore(clock)


@pytest.fixture
def events() -> MemoryEventSink:
    return MemoryEventSink()
