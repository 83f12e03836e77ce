"""
Runtime statistics snapshot for the pysd runtime publisher.

A snapshot is read once at the start of every tick and handed to each
accessor, so all memory and GC metrics in one batch describe the same
instant.
"""
import gc
import os
import sys
import time
import tracemalloc
from dataclasses import dataclass
from typing import Optional

import psutil
from loguru import logger


@dataclass(frozen=True)
class RuntimeSnapshot:
    """Memory, CPU and garbage collector counters of the current process."""
    rss: int = 0
    vms: int = 0
    shared: int = 0
    heap_alloc: int = 0
    heap_peak: int = 0
    allocated_blocks: int = 0
    cpu_user_ns: int = 0
    cpu_system_ns: int = 0
    gc_collections: int = 0
    gc_collected: int = 0
    gc_uncollectable: int = 0
    gc_gen0_count: int = 0
    gc_gen1_count: int = 0
    gc_gen2_count: int = 0
    gc_pause_total_ns: int = 0
    gc_tracked_objects: int = 0


class GcPauseTracker:
    """Accumulates time spent inside garbage collections via gc.callbacks."""

    def __init__(self, timer=time.perf_counter_ns):
        self.pause_total_ns = 0
        self._timer = timer
        self._started_ns = None
        self._installed = False

    def install(self):
        if self._installed:
            return
        gc.callbacks.append(self._on_gc)
        self._installed = True
        logger.debug("GC pause tracking installed")

    def uninstall(self):
        if not self._installed:
            return
        gc.callbacks.remove(self._on_gc)
        self._installed = False
        self._started_ns = None

    @property
    def installed(self) -> bool:
        return self._installed

    def _on_gc(self, phase, info):
        # Collections never overlap, one pending start is enough
        if phase == "start":
            self._started_ns = self._timer()
        elif phase == "stop" and self._started_ns is not None:
            self.pause_total_ns += self._timer() - self._started_ns
            self._started_ns = None


_pause_tracker = None


def get_pause_tracker() -> GcPauseTracker:
    """Get the process-wide GC pause tracker, installing it on first use."""
    global _pause_tracker
    if _pause_tracker is None:
        _pause_tracker = GcPauseTracker()
        _pause_tracker.install()
    return _pause_tracker


def take_snapshot(process: Optional[psutil.Process] = None, count_objects: bool = True) -> RuntimeSnapshot:
    """Read the current runtime counters in one pass.

    Counting tracked objects builds a list of every object the collector
    tracks, so it costs time and memory proportional to the heap. Pass
    count_objects=False to report 0 instead.

    Args:
        process: psutil process to inspect, defaults to the current one
        count_objects: Count objects tracked by the garbage collector

    Returns:
        A fresh RuntimeSnapshot
    """
    process = process or psutil.Process(os.getpid())

    with process.oneshot():
        mem_info = process.memory_info()
        cpu_times = process.cpu_times()

    if tracemalloc.is_tracing():
        heap_alloc, heap_peak = tracemalloc.get_traced_memory()
    else:
        heap_alloc, heap_peak = 0, 0

    gc_stats = gc.get_stats()
    gen0, gen1, gen2 = gc.get_count()

    return RuntimeSnapshot(
        rss=mem_info.rss,
        vms=mem_info.vms,
        shared=getattr(mem_info, "shared", 0),
        heap_alloc=heap_alloc,
        heap_peak=heap_peak,
        allocated_blocks=sys.getallocatedblocks(),
        cpu_user_ns=int(cpu_times.user * 1_000_000_000),
        cpu_system_ns=int(cpu_times.system * 1_000_000_000),
        gc_collections=sum(gen["collections"] for gen in gc_stats),
        gc_collected=sum(gen["collected"] for gen in gc_stats),
        gc_uncollectable=sum(gen["uncollectable"] for gen in gc_stats),
        gc_gen0_count=gen0,
        gc_gen1_count=gen1,
        gc_gen2_count=gen2,
        gc_pause_total_ns=get_pause_tracker().pause_total_ns,
        gc_tracked_objects=len(gc.get_objects()) if count_objects else 0,
    )
