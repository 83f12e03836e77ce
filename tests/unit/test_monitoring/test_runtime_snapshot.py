"""
Unit tests for monitoring.runtime_snapshot module.

Tests reading runtime counters and GC pause tracking.
"""
import gc
import tracemalloc
import pytest
from dataclasses import fields
from types import SimpleNamespace
from unittest.mock import MagicMock, patch
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__)))))

from monitoring.runtime_snapshot import (
    GcPauseTracker,
    RuntimeSnapshot,
    get_pause_tracker,
    take_snapshot,
)


class TestTakeSnapshot:
    """Test reading the live runtime."""

    @pytest.mark.unit
    def test_snapshot_of_current_process(self):
        """All counters are non-negative integers."""
        snapshot = take_snapshot()

        for field in fields(RuntimeSnapshot):
            value = getattr(snapshot, field.name)
            assert isinstance(value, int), field.name
            assert value >= 0, field.name
        assert snapshot.rss > 0
        assert snapshot.allocated_blocks > 0
        assert snapshot.gc_tracked_objects > 0

    @pytest.mark.unit
    def test_snapshot_is_immutable(self):
        snapshot = take_snapshot()
        with pytest.raises(AttributeError):
            snapshot.rss = 0

    @pytest.mark.unit
    def test_snapshot_from_given_process(self):
        """Memory and CPU figures come from the psutil process."""
        process = MagicMock()
        process.memory_info.return_value = SimpleNamespace(rss=4096, vms=8192)
        process.cpu_times.return_value = SimpleNamespace(user=1.5, system=0.25)

        snapshot = take_snapshot(process)

        assert snapshot.rss == 4096
        assert snapshot.vms == 8192
        assert snapshot.shared == 0  # not reported on this platform
        assert snapshot.cpu_user_ns == 1_500_000_000
        assert snapshot.cpu_system_ns == 250_000_000

    @pytest.mark.unit
    def test_object_count_can_be_skipped(self):
        """Without count_objects the heap is not walked and the count is 0."""
        with patch("monitoring.runtime_snapshot.gc.get_objects") as get_objects:
            snapshot = take_snapshot(count_objects=False)

        get_objects.assert_not_called()
        assert snapshot.gc_tracked_objects == 0
        assert snapshot.rss > 0

    @pytest.mark.unit
    def test_gc_counters_match_gc_stats(self):
        """Collection totals add up every generation."""
        gc.collect()
        snapshot = take_snapshot()
        expected = sum(gen["collections"] for gen in gc.get_stats())
        # a collection may happen while the snapshot itself allocates
        assert snapshot.gc_collections <= expected
        assert snapshot.gc_collections >= expected - 3

    @pytest.mark.unit
    def test_heap_metrics_zero_without_tracemalloc(self):
        if tracemalloc.is_tracing():
            pytest.skip("tracemalloc enabled for the test session")
        snapshot = take_snapshot()
        assert snapshot.heap_alloc == 0
        assert snapshot.heap_peak == 0

    @pytest.mark.unit
    def test_heap_metrics_with_tracemalloc(self):
        """Traced allocations show up as heap bytes."""
        was_tracing = tracemalloc.is_tracing()
        if not was_tracing:
            tracemalloc.start()
        try:
            payload = [bytearray(1024) for _ in range(100)]
            snapshot = take_snapshot()
            assert snapshot.heap_alloc > 0
            assert snapshot.heap_peak >= snapshot.heap_alloc
            del payload
        finally:
            if not was_tracing:
                tracemalloc.stop()


class TestGcPauseTracker:
    """Test accumulation of time spent collecting."""

    @pytest.mark.unit
    def test_accumulates_start_stop_pairs(self):
        timer = iter([100, 350, 1_000, 1_010])
        tracker = GcPauseTracker(timer=lambda: next(timer))

        tracker._on_gc("start", {"generation": 0})
        tracker._on_gc("stop", {"generation": 0})
        tracker._on_gc("start", {"generation": 2})
        tracker._on_gc("stop", {"generation": 2})

        assert tracker.pause_total_ns == 260

    @pytest.mark.unit
    def test_stop_without_start_is_ignored(self):
        tracker = GcPauseTracker(timer=lambda: 500)
        tracker._on_gc("stop", {"generation": 0})
        assert tracker.pause_total_ns == 0

    @pytest.mark.unit
    def test_install_and_uninstall(self):
        """The tracker hooks real collections and can be removed again."""
        tracker = GcPauseTracker()
        tracker.install()
        tracker.install()
        try:
            assert gc.callbacks.count(tracker._on_gc) == 1
            gc.collect()
            assert tracker.pause_total_ns > 0
        finally:
            tracker.uninstall()
        assert tracker._on_gc not in gc.callbacks
        assert not tracker.installed

    @pytest.mark.unit
    def test_global_tracker_feeds_snapshot(self):
        tracker = get_pause_tracker()
        assert tracker is get_pause_tracker()
        assert tracker.installed
        gc.collect()
        before = tracker.pause_total_ns
        assert before > 0
        assert take_snapshot().gc_pause_total_ns >= before
