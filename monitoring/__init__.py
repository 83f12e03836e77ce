"""
Initialize the runtime stats monitoring system.
"""
import tracemalloc
from functools import partial
from typing import Optional, TextIO

from loguru import logger

from monitoring.publisher import (
    INTERVAL_SECONDS,
    RuntimeStatsPublisher,
    get_runtime_stats_publisher,
    start_runtime_stats,
    stop_runtime_stats,
)
from monitoring.registry import METRICS, DataPoint, MetricDefinition, TimeSeriesRecord, get_definitions
from monitoring.runtime_snapshot import RuntimeSnapshot, get_pause_tracker, take_snapshot


def init_monitoring(destination: str, error_sink: Optional[TextIO] = None,
                    trace_allocations: bool = False, count_gc_objects: bool = True,
                    **publisher_options) -> Optional[RuntimeStatsPublisher]:
    """Prepare runtime counters and start the publisher.

    Args:
        destination: Project id or connection string of the backend
        error_sink: Text stream receiving failure descriptions
        trace_allocations: Start tracemalloc so heap metrics are populated
        count_gc_objects: Count GC-tracked objects each tick, which walks the heap
        **publisher_options: Extra RuntimeStatsPublisher arguments

    Returns:
        The running publisher, or None if it could not be started
    """
    logger.info("Initializing runtime stats monitoring...")

    if trace_allocations and not tracemalloc.is_tracing():
        tracemalloc.start()
        logger.info("tracemalloc started for heap allocation metrics")

    if not count_gc_objects:
        publisher_options.setdefault("snapshot_factory", partial(take_snapshot, count_objects=False))

    for definition in get_definitions():
        logger.debug(f"Registered runtime metric {definition.name}")

    # Install before the first tick so pause time covers the whole interval
    get_pause_tracker()

    publisher = start_runtime_stats(destination, error_sink=error_sink, **publisher_options)
    if publisher:
        logger.info("Runtime stats monitoring initialized successfully")
    return publisher


__all__ = [
    'INTERVAL_SECONDS',
    'METRICS',
    'DataPoint',
    'MetricDefinition',
    'RuntimeSnapshot',
    'RuntimeStatsPublisher',
    'TimeSeriesRecord',
    'get_runtime_stats_publisher',
    'init_monitoring',
    'start_runtime_stats',
    'stop_runtime_stats',
    'take_snapshot',
]
