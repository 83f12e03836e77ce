"""
Metric registry for the pysd runtime publisher.

Maps each backend metric type to an accessor that turns the tick's
RuntimeSnapshot (or a live runtime counter) into one DataPoint.
"""
import os
import threading
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping

import psutil

from monitoring.runtime_snapshot import RuntimeSnapshot

METRIC_PREFIX = "custom.googleapis.com/pysd"
RESOURCE_TYPE = "global"

_INT64_SIGN_BIT = 1 << 63
_UINT64_MASK = (1 << 64) - 1


@dataclass(frozen=True)
class DataPoint:
    """One timestamped int64 value."""
    end_time: int
    value: int


Accessor = Callable[[RuntimeSnapshot], DataPoint]


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    accessor: Accessor


@dataclass(frozen=True)
class TimeSeriesRecord:
    """One metric's entry in an outbound batch."""
    metric_type: str
    point: DataPoint
    resource_type: str = RESOURCE_TYPE


def to_int64(value) -> int:
    """Reinterpret an integer as a signed 64-bit value, wrapping on overflow."""
    value = int(value) & _UINT64_MASK
    if value & _INT64_SIGN_BIT:
        value -= 1 << 64
    return value


def _now() -> int:
    return int(time.time())


def int64_point(value) -> DataPoint:
    """Build a data point ending now.

    All metrics are integers, so this is the only point factory.
    """
    return DataPoint(end_time=_now(), value=to_int64(value))


def _snapshot_accessor(field: str) -> Accessor:
    def accessor(snapshot: RuntimeSnapshot) -> DataPoint:
        return int64_point(getattr(snapshot, field))
    accessor.__name__ = f"get_{field}_data_point"
    return accessor


def get_thread_count_data_point(snapshot: RuntimeSnapshot) -> DataPoint:
    return int64_point(threading.active_count())


def get_ctx_switch_data_point(snapshot: RuntimeSnapshot) -> DataPoint:
    switches = psutil.Process(os.getpid()).num_ctx_switches()
    return int64_point(switches.voluntary + switches.involuntary)


def _metric(name: str) -> str:
    return f"{METRIC_PREFIX}/{name}"


# metric type -> accessor; live counters first, then snapshot counters
_SNAPSHOT_METRICS = {
    "mstats/rss": "rss",
    "mstats/vms": "vms",
    "mstats/shared": "shared",
    "mstats/heapalloc": "heap_alloc",
    "mstats/heappeak": "heap_peak",
    "mstats/allocatedblocks": "allocated_blocks",
    "mstats/cpuuserns": "cpu_user_ns",
    "mstats/cpusystemns": "cpu_system_ns",
    "gc/collections": "gc_collections",
    "gc/collected": "gc_collected",
    "gc/uncollectable": "gc_uncollectable",
    "gc/gen0count": "gc_gen0_count",
    "gc/gen1count": "gc_gen1_count",
    "gc/gen2count": "gc_gen2_count",
    "gc/pausetotalns": "gc_pause_total_ns",
    "gc/tracked": "gc_tracked_objects",
}

_metrics = {
    _metric("threads"): get_thread_count_data_point,
    _metric("ctxswitches"): get_ctx_switch_data_point,
}
_metrics.update({
    _metric(name): _snapshot_accessor(field)
    for name, field in _SNAPSHOT_METRICS.items()
})

METRICS: Mapping[str, Accessor] = MappingProxyType(_metrics)


def get_definitions():
    """Return the registry as MetricDefinition records."""
    return [MetricDefinition(name, accessor) for name, accessor in METRICS.items()]
