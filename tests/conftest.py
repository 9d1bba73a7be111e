"""Shared fixtures for mirror-relay unit tests."""

import pytest

from mirror_relay.core.clock import ManualClock
from tests.relay_fakes import RecordingSleep


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1_000.0)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
