"""
Module: metrics.py
Description: CloudWatch custom metrics publishing.

Publishes delivery metrics to CloudWatch for monitoring webhook
success rates and endpoint latency.

Key Components:
- MetricsClient: CloudWatch metrics client
- put_metric(): Publish individual metrics
- record_delivery(): Publish the metrics for one delivery attempt
- Graceful error handling for metrics failures

Dependencies: boto3, typing, logger
"""

from typing import Optional

import boto3

from webhook_engine.models.delivery import DeliveryLogEntry, DeliveryStatus
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)


class MetricsClient:
    """CloudWatch metrics client."""

    def __init__(
        self,
        namespace: str = "WebhookEngine",
        enabled: bool = True,
        region_name: Optional[str] = None
    ):
        """
        Initialize metrics client.

        Args:
            namespace: CloudWatch metrics namespace
            enabled: When False, metrics are only logged at debug level
            region_name: AWS region for the CloudWatch client
        """
        self.namespace = namespace
        self.enabled = enabled
        self.cloudwatch = boto3.client('cloudwatch', region_name=region_name) if enabled else None

        logger.info(
            "Metrics client initialized",
            namespace=namespace,
            enabled=enabled
        )

    def put_metric(
        self,
        metric_name: str,
        value: float,
        unit: str = 'Count',
        dimensions: Optional[dict] = None
    ) -> None:
        """
        Publish a metric to CloudWatch.

        Args:
            metric_name: Name of the metric
            value: Metric value
            unit: Metric unit (Count, Milliseconds, etc.)
            dimensions: Optional metric dimensions
        """
        if not self.enabled:
            logger.debug(
                "Metric skipped (metrics disabled)",
                metric_name=metric_name,
                value=value
            )
            return

        try:
            metric_data = {
                'MetricName': metric_name,
                'Value': value,
                'Unit': unit
            }

            if dimensions:
                metric_data['Dimensions'] = [
                    {'Name': k, 'Value': v}
                    for k, v in dimensions.items()
                ]

            self.cloudwatch.put_metric_data(
                Namespace=self.namespace,
                MetricData=[metric_data]
            )

            logger.debug(
                "Metric published to CloudWatch",
                metric_name=metric_name,
                value=value,
                unit=unit,
                dimensions=dimensions,
                namespace=self.namespace
            )

        except Exception as e:
            # Don't fail delivery if metrics fail
            logger.warning(
                "Failed to publish metric",
                metric_name=metric_name,
                value=value,
                error=str(e),
                namespace=self.namespace
            )

    def record_delivery(self, entry: DeliveryLogEntry) -> None:
        """Publish outcome and latency metrics for one recorded attempt."""
        dimensions = {'Trigger': entry.event} if entry.event else None
        if entry.status == DeliveryStatus.SUCCESS:
            self.put_metric('WebhookDeliverySuccess', 1.0, dimensions=dimensions)
        else:
            self.put_metric('WebhookDeliveryFailure', 1.0, dimensions=dimensions)

        if entry.duration_ms is not None:
            self.put_metric(
                'WebhookDeliveryDuration',
                float(entry.duration_ms),
                unit='Milliseconds',
                dimensions=dimensions
            )
