"""
Module: sqs.py
Description: SQS client for scheduled retry messages.

Sends retry tasks to the retry queue with a delivery delay so a
retry chain survives process restarts and never blocks a worker
for the length of its backoff window.
"""

import json
import math
from typing import Any, Dict, Optional

from aioboto3 import Session
from botocore.exceptions import ClientError

from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)

# SQS rejects DelaySeconds above 15 minutes
MAX_DELAY_SECONDS = 900


def clamp_delay_seconds(delay_seconds: float) -> int:
    """Round a delay up to whole seconds within SQS bounds."""
    if delay_seconds <= 0:
        return 0
    return min(MAX_DELAY_SECONDS, math.ceil(delay_seconds))


class SQSClient:
    """
    SQS client for retry queue operations.

    Provides methods for sending delayed retry messages to the
    queue consumed by the retry worker.
    """

    def __init__(self, queue_url: str, region_name: Optional[str] = None):
        """
        Initialize SQS client.

        Args:
            queue_url: URL of the SQS queue
            region_name: AWS region
        """
        if not queue_url or not isinstance(queue_url, str):
            raise ValueError("queue_url must be a non-empty string")

        self.queue_url = queue_url
        self.region_name = region_name
        self.session = Session()

        logger.info(
            "SQS client initialized",
            queue_url=queue_url
        )

    async def send_message(
        self,
        webhook_id: str,
        message_data: Dict[str, Any],
        delay_seconds: int = 0
    ) -> str:
        """
        Send a retry message to the SQS queue.

        Args:
            webhook_id: Webhook the retry belongs to
            message_data: JSON-serializable message body
            delay_seconds: Delay before the message becomes visible (0-900)

        Returns:
            Message ID from SQS

        Raises:
            ClientError: If SQS operation fails
            ValueError: If parameters are invalid
        """
        if not webhook_id or not isinstance(webhook_id, str):
            raise ValueError("webhook_id must be a non-empty string")
        if not message_data or not isinstance(message_data, dict):
            raise ValueError("message_data must be a non-empty dictionary")
        if delay_seconds < 0 or delay_seconds > MAX_DELAY_SECONDS:
            raise ValueError(f"delay_seconds must be between 0 and {MAX_DELAY_SECONDS}")

        try:
            async with self.session.client('sqs', region_name=self.region_name) as sqs:
                response = await sqs.send_message(
                    QueueUrl=self.queue_url,
                    MessageBody=json.dumps(message_data),
                    MessageAttributes={
                        'WebhookId': {
                            'StringValue': webhook_id,
                            'DataType': 'String'
                        }
                    },
                    DelaySeconds=delay_seconds
                )

                message_id = response['MessageId']
                logger.info(
                    "Message sent to SQS",
                    webhook_id=webhook_id,
                    message_id=message_id,
                    delay_seconds=delay_seconds,
                    queue_url=self.queue_url
                )

                return message_id

        except ClientError as e:
            logger.error(
                "Failed to send message to SQS",
                webhook_id=webhook_id,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise
