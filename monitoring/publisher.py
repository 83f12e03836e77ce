"""
Runtime stats publisher for the pysd runtime publisher.

Runs one asyncio background task that, every INTERVAL_SECONDS, snapshots
the Python runtime, evaluates every registered metric and writes the whole
batch to the monitoring backend in a single call.
"""
import asyncio
import sys
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, TextIO

from loguru import logger

from monitoring.registry import METRICS, Accessor, TimeSeriesRecord
from monitoring.runtime_snapshot import RuntimeSnapshot, take_snapshot

# Push interval (1 min)
INTERVAL_SECONDS = 60
DEFAULT_SEND_TIMEOUT_SECONDS = 30.0

STATE_INITIALIZING = "initializing"
STATE_RUNNING = "running"
STATE_STOPPED = "stopped"


class RuntimeStatsPublisher:
    """Periodically collects runtime metrics and writes them as one batch."""

    def __init__(
        self,
        client,
        error_sink: Optional[TextIO] = None,
        metrics: Mapping[str, Accessor] = METRICS,
        snapshot_factory: Callable[[], RuntimeSnapshot] = take_snapshot,
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        """Initialize the publisher.

        Args:
            client: Monitoring client exposing create_time_series(records)
            error_sink: Text stream receiving send failure descriptions
            metrics: Metric type to accessor mapping
            snapshot_factory: Reads one RuntimeSnapshot per tick
            send_timeout: Bound on a single outbound write, in seconds
            clock: Monotonic clock driving the tick schedule
            sleep: Coroutine function used to wait between ticks
        """
        self.client = client
        self.error_sink = error_sink or sys.stderr
        self.metrics = metrics
        self.snapshot_factory = snapshot_factory
        self.send_timeout = send_timeout
        self._clock = clock
        self._sleep = sleep

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._next_tick = None
        self._pending_send: Optional[asyncio.Future] = None

        self.state = STATE_INITIALIZING
        self.ticks = 0
        self.batches_sent = 0
        self.failed_sends = 0
        self.last_error = None

    def collect(self) -> List[TimeSeriesRecord]:
        """Take one snapshot and build a record for every registered metric."""
        snapshot = self.snapshot_factory()
        return [
            TimeSeriesRecord(metric_type=name, point=accessor(snapshot))
            for name, accessor in self.metrics.items()
        ]

    async def tick(self) -> bool:
        """Collect and send one batch.

        A write that outlived its timeout keeps its worker thread. Until that
        thread finishes, further ticks drop their batch instead of starting a
        second write.

        Returns:
            True if the batch was written, False if the send failed
        """
        self.ticks += 1
        records = self.collect()

        if self._pending_send is not None and not self._pending_send.done():
            self._report_send_failure(
                RuntimeError("previous write still in progress"), len(records))
            return False

        # write all metrics at once
        self._pending_send = asyncio.ensure_future(
            asyncio.to_thread(self.client.create_time_series, records))
        try:
            await asyncio.wait_for(asyncio.shield(self._pending_send), timeout=self.send_timeout)
        except asyncio.CancelledError:
            self._pending_send.add_done_callback(self._log_late_send)
            raise
        except asyncio.TimeoutError:
            self._pending_send.add_done_callback(self._log_late_send)
            self._report_send_failure(
                TimeoutError(f"write did not complete within {self.send_timeout}s"), len(records))
            return False
        except Exception as e:
            self._report_send_failure(e, len(records))
            return False

        self.batches_sent += 1
        logger.debug(f"Sent batch of {len(records)} runtime metrics")
        return True

    def _report_send_failure(self, error: Exception, batch_size: int):
        self.failed_sends += 1
        self.last_error = str(error)
        self.error_sink.write(f"unable to write time series data: {error}\n")
        self.error_sink.flush()
        logger.error(f"Dropped batch of {batch_size} runtime metrics: {error}")

    @staticmethod
    def _log_late_send(future: asyncio.Future):
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Abandoned runtime metrics write failed later: {error}")
        else:
            logger.warning("Abandoned runtime metrics write completed late")

    async def _wait_for_next_tick(self):
        now = self._clock()
        if self._next_tick is None:
            self._next_tick = now + INTERVAL_SECONDS

        delay = self._next_tick - now
        missed = 0
        if delay < 0:
            # Overdue tick fires at once; slots that passed entirely are dropped
            missed = int(-delay // INTERVAL_SECONDS)
            if missed:
                logger.warning(f"Runtime stats publisher fell behind, skipped {missed} tick(s)")
            delay = 0

        await self._sleep(delay)
        self._next_tick += (missed + 1) * INTERVAL_SECONDS

    async def run(self):
        """Publish forever, until stop() is requested or the task is cancelled."""
        self.state = STATE_RUNNING
        logger.info(f"Runtime stats publisher running, {len(self.metrics)} metrics every {INTERVAL_SECONDS}s")
        try:
            while not self._stop_event.is_set():
                await self._wait_for_next_tick()
                if self._stop_event.is_set():
                    break
                await self.tick()
        finally:
            self.state = STATE_STOPPED
            logger.info("Runtime stats publisher stopped")

    @property
    def is_running(self) -> bool:
        """True from start() until the loop task finishes."""
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule run() on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    def request_stop(self):
        """Ask the loop to exit at the top of its next tick."""
        self._stop_event.set()

    async def stop(self):
        """Stop the loop and wait for the task to finish."""
        self.request_stop()
        task = self._task
        if task is None:
            self.state = STATE_STOPPED
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # a task cancelled before its first step never runs the finally block
        self.state = STATE_STOPPED
        self._task = None

    def get_stats(self) -> Dict[str, Any]:
        """Get publisher statistics."""
        return {
            "state": self.state,
            "metrics_registered": len(self.metrics),
            "interval_seconds": INTERVAL_SECONDS,
            "ticks": self.ticks,
            "batches_sent": self.batches_sent,
            "failed_sends": self.failed_sends,
            "last_error": self.last_error
        }


# Global publisher instance
_publisher = None


def start_runtime_stats(
    destination: str,
    error_sink: Optional[TextIO] = None,
    client_factory: Optional[Callable[[str], Any]] = None,
    **publisher_options,
) -> Optional[RuntimeStatsPublisher]:
    """Start sending runtime stats to the monitoring backend.

    Must be called from a running event loop. Returns once the client is
    built and the background task is scheduled.

    Args:
        destination: Project id or connection string of the backend
        error_sink: Text stream receiving failure descriptions, stderr if None
        client_factory: Builds the monitoring client from the destination,
            defaults to the configured backend
        **publisher_options: Extra RuntimeStatsPublisher arguments

    Returns:
        The running publisher, or None if the client could not be created
    """
    global _publisher
    error_sink = error_sink or sys.stderr

    if _publisher is not None and _publisher.is_running:
        logger.warning("Runtime stats publisher already running")
        return _publisher

    if client_factory is None:
        from clients import create_client
        client_factory = create_client

    try:
        client = client_factory(destination)
    except Exception as e:
        error_sink.write(f"unable to create monitoring client: {e}\n")
        error_sink.flush()
        logger.error(f"Runtime stats publisher not started: {e}")
        return None

    _publisher = RuntimeStatsPublisher(client, error_sink=error_sink, **publisher_options)
    _publisher.start()
    return _publisher


async def stop_runtime_stats():
    """Stop the global publisher if it is running."""
    global _publisher
    if _publisher is not None:
        await _publisher.stop()
        _publisher = None


def get_runtime_stats_publisher() -> Optional[RuntimeStatsPublisher]:
    """Get the global publisher, None if not started."""
    return _publisher
