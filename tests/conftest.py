"""
Shared test configuration and fixtures for pysd runtime publisher tests.

This module provides the fake clock, fake monitoring client and sample
snapshots used across the test modules.
"""
import os
import sys
import io
import pytest
from dataclasses import fields
from typing import List
from unittest.mock import patch

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from monitoring.runtime_snapshot import RuntimeSnapshot
from monitoring import publisher as publisher_module


class FakeClock:
    """Drives the publisher without real waiting.

    sleep() advances both the monotonic and the wall clock. Once more than
    stop_after sleeps have happened it asks the attached publisher to stop,
    so run() returns after exactly stop_after ticks.
    """

    START = 1_700_000_000.0

    def __init__(self, start: float = START):
        self.now = start
        self.sleeps: List[float] = []
        self.publisher = None
        self.stop_after = None

    def monotonic(self) -> float:
        return self.now

    def wall(self) -> int:
        return int(self.now)

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        if self.publisher is not None and self.stop_after is not None and len(self.sleeps) > self.stop_after:
            self.publisher.request_stop()


class FakeMonitoringClient:
    """Records every batch; raises the queued errors in order."""

    def __init__(self, clock: FakeClock = None, errors=None):
        self.clock = clock
        self.calls = []
        self.call_times = []
        self.errors = list(errors or [])

    def create_time_series(self, records):
        self.calls.append(list(records))
        self.call_times.append(self.clock.now if self.clock else None)
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error


@pytest.fixture
def fake_clock():
    """Provide a fake clock with the registry's wall clock patched to it."""
    clock = FakeClock()
    with patch("monitoring.registry._now", side_effect=clock.wall):
        yield clock


@pytest.fixture
def fake_client(fake_clock):
    """Provide a monitoring client that always succeeds."""
    return FakeMonitoringClient(fake_clock)


@pytest.fixture
def make_client(fake_clock):
    """Build fake clients that raise the given errors in order."""
    def _make(errors=None):
        return FakeMonitoringClient(fake_clock, errors=errors)
    return _make


@pytest.fixture
def error_sink():
    """Provide an in-memory error sink."""
    return io.StringIO()


@pytest.fixture
def sample_snapshot():
    """Provide a snapshot where every field has a distinct value."""
    values = {
        field.name: (index + 1) * 1_000_003
        for index, field in enumerate(fields(RuntimeSnapshot))
    }
    return RuntimeSnapshot(**values)


@pytest.fixture
def make_publisher(fake_clock, error_sink, sample_snapshot):
    """Build publishers wired to the fake clock and the sample snapshot."""
    def _make(client, **options):
        options.setdefault("error_sink", error_sink)
        options.setdefault("snapshot_factory", lambda: sample_snapshot)
        options.setdefault("clock", fake_clock.monotonic)
        options.setdefault("sleep", fake_clock.sleep)
        publisher = publisher_module.RuntimeStatsPublisher(client, **options)
        fake_clock.publisher = publisher
        return publisher
    return _make


@pytest.fixture(autouse=True)
def reset_global_publisher():
    """Make sure no test leaks the module-level publisher."""
    yield
    publisher_module._publisher = None


@pytest.fixture
def run_ticks(fake_clock):
    """Provide a coroutine running a publisher loop for exactly `ticks` ticks."""
    async def _run(publisher, ticks: int):
        fake_clock.publisher = publisher
        fake_clock.stop_after = ticks
        await publisher.run()
    return _run
