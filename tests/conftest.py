"""Shared fixtures for the price-sync tests."""

import pytest

from fakes import FakeTriggerPort, RecordingNotifier, SleepRecorder


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def trigger_port() -> FakeTriggerPort:
    return FakeTriggerPort()
