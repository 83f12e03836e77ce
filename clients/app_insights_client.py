"""
Azure Application Insights client for the pysd runtime publisher.
"""
from datetime import datetime, timezone
from typing import List

from loguru import logger
from opencensus.ext.azure.metrics_exporter import MetricsExporter
from opencensus.metrics.export.metric import Metric
from opencensus.metrics.export.metric_descriptor import MetricDescriptor, MetricDescriptorType
from opencensus.metrics.export.point import Point
from opencensus.metrics.export.time_series import TimeSeries
from opencensus.metrics.export.value import ValueLong

from monitoring.registry import TimeSeriesRecord


def to_metric(record: TimeSeriesRecord) -> Metric:
    """Convert a batch record to an opencensus gauge with a single point."""
    descriptor = MetricDescriptor(
        record.metric_type,
        f"Python runtime statistic ({record.resource_type})",
        "1",
        MetricDescriptorType.GAUGE_INT64,
        [])
    timestamp = datetime.fromtimestamp(record.point.end_time, tz=timezone.utc)
    series = TimeSeries([], [Point(ValueLong(record.point.value), timestamp)], None)
    return Metric(descriptor, [series])


class AppInsightsClient:
    """Writes runtime stats batches to Azure Application Insights."""

    def __init__(self, connection_string: str, exporter: MetricsExporter = None):
        """Initialize the Application Insights metrics exporter.

        Args:
            connection_string: Application Insights connection string
            exporter: Preconfigured exporter, built from the connection string if None
        """
        if not connection_string and exporter is None:
            raise ValueError("An Application Insights connection string is required")

        # Failed batches are dropped, so the exporter keeps no local retry storage
        self.exporter = exporter or MetricsExporter(
            connection_string=connection_string,
            enable_local_storage=False)
        logger.info("Initialized Application Insights metrics exporter")

    def create_time_series(self, records: List[TimeSeriesRecord]):
        """Export all records in one call to the metrics exporter."""
        metrics = [to_metric(record) for record in records]
        self.exporter.export_metrics(metrics)
        logger.debug(f"Exported {len(metrics)} metrics to Application Insights")
