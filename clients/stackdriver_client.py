"""
Google Cloud Monitoring (Stackdriver) client for the pysd runtime publisher.
"""
from typing import List, Optional

from google.cloud import monitoring_v3
from loguru import logger

from monitoring.registry import TimeSeriesRecord


def to_time_series(record: TimeSeriesRecord) -> monitoring_v3.TimeSeries:
    """Convert a batch record to a Cloud Monitoring TimeSeries."""
    series = monitoring_v3.TimeSeries()
    series.metric.type = record.metric_type
    series.resource.type = record.resource_type
    interval = monitoring_v3.TimeInterval({"end_time": {"seconds": record.point.end_time}})
    series.points = [
        monitoring_v3.Point({"interval": interval, "value": {"int64_value": record.point.value}})
    ]
    return series


class StackdriverClient:
    """Writes runtime stats batches to one Google Cloud project."""

    def __init__(self, project_id: str, timeout: Optional[float] = None,
                 client: Optional[monitoring_v3.MetricServiceClient] = None):
        """Initialize the Cloud Monitoring client.

        Args:
            project_id: Google Cloud project receiving the time series
            timeout: Per-request deadline in seconds
            client: Preconfigured MetricServiceClient, created from
                application default credentials if None
        """
        if not project_id:
            raise ValueError("A Google Cloud project id is required")

        self.project_id = project_id
        self.timeout = timeout
        self.client = client or monitoring_v3.MetricServiceClient()
        self.project_name = f"projects/{project_id}"
        logger.info(f"Initialized Cloud Monitoring client for {self.project_name}")

    def create_time_series(self, records: List[TimeSeriesRecord]):
        """Write all records in a single CreateTimeSeries request."""
        time_series = [to_time_series(record) for record in records]
        self.client.create_time_series(
            name=self.project_name,
            time_series=time_series,
            retry=None,
            timeout=self.timeout,
        )
        logger.debug(f"Wrote {len(time_series)} time series to {self.project_name}")
