"""
CloudWatch metrics adapter.

Implements MetricsPublisherPort using boto3 ``put_metric_data``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from domain.models import StatisticsSnapshot
from ports.metrics_publisher import MetricsPublisherPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope, MetricsConfig
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.METRICS)


def mapping_rate(mapped: int, total: int) -> float:
    """Percentage of participants resolved in a directory."""
    if total == 0:
        return 0.0
    return round(mapped / total * 100, 2)


class CloudWatchMetricsAdapter:
    """Amazon CloudWatch implementation of MetricsPublisherPort.

    Metric failures are logged and dropped; they never fail processing.
    """

    def __init__(
        self,
        environment: str = "development",
        region: str = Defaults.AWS_REGION,
        namespace: str = MetricsConfig.NAMESPACE,
        cloudwatch_client: Optional[object] = None,
    ) -> None:
        self._namespace = namespace
        self._dimensions = {"Environment": environment, "Region": region}
        self._cw = cloudwatch_client or boto3.client("cloudwatch", region_name=region)

    # ------------------------------------------------------------------
    # MetricsPublisherPort implementation
    # ------------------------------------------------------------------

    def publish_statistics(self, snapshot: StatisticsSnapshot) -> None:
        self.put_metrics(
            [
                self._datum("ProcessedTranscripts", snapshot.total_processed, "Count"),
                self._datum("SuccessfulMappings", snapshot.successful, "Count"),
                self._datum("FailedMappings", snapshot.failed, "Count"),
                self._datum("SuccessRate", snapshot.success_rate, "Percent"),
                self._datum("AverageProcessingTime", snapshot.average_processing_time, "Seconds"),
            ]
        )

    def record_participant_mapping(
        self,
        total_participants: int,
        mapped_slack: int,
        mapped_notion: int,
        dimensions: Optional[Dict[str, str]] = None,
    ) -> None:
        data = [
            self._datum("TotalParticipants", total_participants, "Count", dimensions),
            self._datum("MappedSlackUsers", mapped_slack, "Count", dimensions),
            self._datum("MappedNotionUsers", mapped_notion, "Count", dimensions),
        ]
        if total_participants > 0:
            data.append(
                self._datum(
                    "SlackMappingRate", mapping_rate(mapped_slack, total_participants), "Percent", dimensions
                )
            )
            data.append(
                self._datum(
                    "NotionMappingRate", mapping_rate(mapped_notion, total_participants), "Percent", dimensions
                )
            )
        self.put_metrics(data)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def put_metrics(self, metric_data: List[Dict[str, Any]]) -> None:
        """Send data points in CloudWatch-sized batches."""
        size = MetricsConfig.MAX_BATCH_SIZE
        for i in range(0, len(metric_data), size):
            batch = metric_data[i:i + size]
            try:
                self._cw.put_metric_data(Namespace=self._namespace, MetricData=batch)
            except (BotoCoreError, ClientError) as exc:
                logger.error("cloudwatch_put_failed", count=len(batch), error=str(exc))
                continue
            logger.info(
                "metrics_sent",
                namespace=self._namespace,
                metrics={d["MetricName"]: d["Value"] for d in batch},
            )

    def _datum(
        self,
        name: str,
        value: float,
        unit: str,
        dimensions: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        dims = {**self._dimensions, **(dimensions or {})}
        return {
            "MetricName": name,
            "Value": float(value),
            "Unit": unit,
            "Timestamp": datetime.now(timezone.utc),
            "Dimensions": [{"Name": k, "Value": str(v)} for k, v in dims.items()],
        }
