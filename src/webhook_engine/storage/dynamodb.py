"""
Module: dynamodb.py
Description: DynamoDB implementations of the persistence interfaces.

Provides subscriber reads, atomic delivery-status updates and the
delivery attempt log on DynamoDB with proper error handling and
logging.

Key Components:
- DynamoDBSubscriberStore: Subscriber lookup and status updates
- DynamoDBDeliveryLogStore: Delivery log writes and queries
- subscriber_to_item() / item_to_subscriber(): Item serialization
- Error handling: ClientError logged with code and message, then re-raised

Table layout:
- webhooks: hash key "id"; nested maps stored as JSON strings,
  triggers stored as a list so scans can filter with contains()
- delivery logs: hash key "id"; GSI "WebhookIndex"
  (webhook_id HASH, created_at RANGE) for per-webhook browsing

Dependencies: boto3, botocore, datetime, decimal, json, typing
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from webhook_engine.models.delivery import DeliveryLogEntry, DeliveryStatus
from webhook_engine.models.subscriber import Subscriber, SubscriberStatus
from webhook_engine.storage.base import DeliveryLogStore, SubscriberStatusStore, SubscriberStore
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)

WEBHOOK_INDEX = "WebhookIndex"

_SUBSCRIBER_JSON_FIELDS = ("headers", "retry_policy")
_SUBSCRIBER_DATETIME_FIELDS = ("last_successful_delivery_at", "created_at", "updated_at")
_LOG_JSON_FIELDS = ("request_payload", "request_headers", "response_headers")
_LOG_DATETIME_FIELDS = ("started_at", "completed_at", "next_retry_at", "created_at")


def _from_dynamo(value: Any) -> Any:
    """Convert boto3 Decimals (recursively) back to int/float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [_from_dynamo(v) for v in value]
    return value


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_item(data: Dict[str, Any], json_fields, datetime_fields) -> Dict[str, Any]:
    item = dict(data)
    for field in datetime_fields:
        if item.get(field) is not None:
            item[field] = item[field].isoformat()
    # Nested maps as JSON strings to preserve types
    for field in json_fields:
        if field in item and item[field] is not None:
            item[field] = json.dumps(item[field])
    # DynamoDB doesn't allow None values
    return {k: v for k, v in item.items() if v is not None}


def _from_item(item: Dict[str, Any], json_fields, datetime_fields) -> Dict[str, Any]:
    data = _from_dynamo(item)
    for field in json_fields:
        if isinstance(data.get(field), str):
            data[field] = json.loads(data[field])
    for field in datetime_fields:
        if isinstance(data.get(field), str):
            data[field] = _parse_datetime(data[field])
    return data


def subscriber_to_item(subscriber: Subscriber) -> Dict[str, Any]:
    """Serialize a Subscriber to a webhooks table item."""
    return _to_item(
        subscriber.model_dump(mode="python"),
        _SUBSCRIBER_JSON_FIELDS,
        _SUBSCRIBER_DATETIME_FIELDS
    ) | {
        "method": subscriber.method.value,
        "auth_type": subscriber.auth_type.value,
        "status": subscriber.status.value,
        "retry_policy": subscriber.retry_policy.model_dump_json(),
    }


def item_to_subscriber(item: Dict[str, Any]) -> Subscriber:
    """Deserialize a webhooks table item."""
    return Subscriber(**_from_item(item, _SUBSCRIBER_JSON_FIELDS, _SUBSCRIBER_DATETIME_FIELDS))


def log_entry_to_item(entry: DeliveryLogEntry) -> Dict[str, Any]:
    """Serialize a DeliveryLogEntry to a delivery logs table item."""
    item = _to_item(entry.model_dump(mode="python"), _LOG_JSON_FIELDS, _LOG_DATETIME_FIELDS)
    item["status"] = entry.status.value
    if entry.error_type is not None:
        item["error_type"] = entry.error_type.value
    return item


def item_to_log_entry(item: Dict[str, Any]) -> DeliveryLogEntry:
    """Deserialize a delivery logs table item."""
    return DeliveryLogEntry(**_from_item(item, _LOG_JSON_FIELDS, _LOG_DATETIME_FIELDS))


class DynamoDBSubscriberStore(SubscriberStore, SubscriberStatusStore):
    """
    DynamoDB-backed subscriber reads and status updates.

    Attributes:
        table_name: Name of the DynamoDB webhooks table
        dynamodb: boto3 DynamoDB resource
        table: boto3 DynamoDB table resource

    Example:
        >>> store = DynamoDBSubscriberStore(table_name="webhooks")
        >>> subscriber = await store.get_subscriber("wh_123")
    """

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize the subscriber store.

        Args:
            table_name: Name of the DynamoDB webhooks table
            region_name: AWS region

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)

        logger.info("DynamoDB subscriber store initialized", table_name=table_name)

    async def get_subscriber(self, webhook_id: str) -> Optional[Subscriber]:
        """
        Retrieve a subscriber by id.

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If webhook_id is invalid
        """
        if not webhook_id or not isinstance(webhook_id, str):
            raise ValueError("webhook_id must be a non-empty string")

        try:
            response = self.table.get_item(Key={'id': webhook_id})

        except ClientError as e:
            logger.error(
                "Failed to retrieve webhook from DynamoDB",
                webhook_id=webhook_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        if 'Item' not in response:
            logger.warning("Webhook not found in DynamoDB", webhook_id=webhook_id)
            return None

        return item_to_subscriber(response['Item'])

    async def list_subscribers_for_trigger(self, event: str) -> List[Subscriber]:
        """
        Scan for enabled, active subscribers that list this trigger.

        Raises:
            ClientError: If DynamoDB operation fails
        """
        filter_expression = (
            Attr('triggers').contains(event)
            & Attr('enabled').eq(True)
            & Attr('status').eq(SubscriberStatus.ACTIVE.value)
        )

        subscribers: List[Subscriber] = []
        kwargs: Dict[str, Any] = {'FilterExpression': filter_expression}

        try:
            while True:
                response = self.table.scan(**kwargs)
                subscribers.extend(item_to_subscriber(item) for item in response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

        except ClientError as e:
            logger.error(
                "Failed to scan webhooks for trigger",
                trigger=event,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.debug("Webhooks scanned for trigger", trigger=event, count=len(subscribers))
        return subscribers

    async def update_subscriber_delivery_status(
        self,
        webhook_id: str,
        status: DeliveryStatus,
        timestamp: Optional[datetime] = None
    ) -> None:
        """
        Update delivery-status fields with a single UpdateItem.

        A missing webhook (deleted since dispatch) is logged and ignored.

        Raises:
            ClientError: If DynamoDB operation fails for another reason
        """
        update_expression = "SET last_delivery_status = :status"
        values: Dict[str, Any] = {':status': status.value}
        if status == DeliveryStatus.SUCCESS:
            update_expression += ", last_successful_delivery_at = :delivered_at"
            values[':delivered_at'] = (timestamp or datetime.now(timezone.utc)).isoformat()

        try:
            self.table.update_item(
                Key={'id': webhook_id},
                UpdateExpression=update_expression,
                ConditionExpression=Attr('id').exists(),
                ExpressionAttributeValues=values
            )

        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                logger.warning("Status update for unknown webhook", webhook_id=webhook_id)
                return
            logger.error(
                "Failed to update webhook delivery status",
                webhook_id=webhook_id,
                status=status.value,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise


class DynamoDBDeliveryLogStore(DeliveryLogStore):
    """
    DynamoDB-backed delivery attempt log.

    Example:
        >>> store = DynamoDBDeliveryLogStore(table_name="delivery-logs")
        >>> await store.record_delivery_attempt(entry)
        >>> logs = await store.list_delivery_logs(webhook_id="wh_123", limit=20)
    """

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize the delivery log store.

        Args:
            table_name: Name of the DynamoDB delivery logs table
            region_name: AWS region

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)

        logger.info("DynamoDB delivery log store initialized", table_name=table_name)

    async def record_delivery_attempt(self, entry: DeliveryLogEntry) -> DeliveryLogEntry:
        """
        Store one delivery attempt.

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If entry is invalid
        """
        if not isinstance(entry, DeliveryLogEntry):
            raise ValueError("entry must be a DeliveryLogEntry instance")

        try:
            self.table.put_item(
                Item=log_entry_to_item(entry),
                ConditionExpression=Attr('id').not_exists()
            )

        except ClientError as e:
            logger.error(
                "Failed to store delivery attempt in DynamoDB",
                log_id=entry.id,
                webhook_id=entry.webhook_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.info(
            "Delivery attempt stored in DynamoDB",
            log_id=entry.id,
            webhook_id=entry.webhook_id,
            attempt_number=entry.attempt_number,
            status=entry.status.value
        )
        return entry

    async def get_delivery_log(self, log_id: str) -> Optional[DeliveryLogEntry]:
        """
        Retrieve one delivery attempt by id.

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If log_id is invalid
        """
        if not log_id or not isinstance(log_id, str):
            raise ValueError("log_id must be a non-empty string")

        try:
            response = self.table.get_item(Key={'id': log_id})

        except ClientError as e:
            logger.error(
                "Failed to retrieve delivery log from DynamoDB",
                log_id=log_id,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        if 'Item' not in response:
            return None
        return item_to_log_entry(response['Item'])

    async def list_delivery_logs(
        self,
        webhook_id: Optional[str] = None,
        session_id: Optional[str] = None,
        status: Optional[DeliveryStatus] = None,
        limit: int = 20
    ) -> List[DeliveryLogEntry]:
        """
        List delivery attempts, newest first.

        Queries the WebhookIndex GSI when webhook_id is given, otherwise
        scans the table. session_id and status are applied as filters.

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If limit is out of range
        """
        if limit <= 0 or limit > 100:
            raise ValueError("limit must be between 1 and 100")

        filter_expression = None
        if session_id is not None:
            filter_expression = Attr('session_id').eq(session_id)
        if status is not None:
            status_condition = Attr('status').eq(status.value)
            filter_expression = (
                status_condition if filter_expression is None
                else filter_expression & status_condition
            )

        kwargs: Dict[str, Any] = {}
        if filter_expression is not None:
            kwargs['FilterExpression'] = filter_expression

        entries: List[DeliveryLogEntry] = []
        try:
            while True:
                if webhook_id is not None:
                    response = self.table.query(
                        IndexName=WEBHOOK_INDEX,
                        KeyConditionExpression=Key('webhook_id').eq(webhook_id),
                        ScanIndexForward=False,  # Most recent first
                        **kwargs
                    )
                else:
                    response = self.table.scan(**kwargs)

                entries.extend(item_to_log_entry(item) for item in response.get('Items', []))

                # A query is already ordered, so stop once the page is full
                if webhook_id is not None and len(entries) >= limit:
                    break
                if 'LastEvaluatedKey' not in response:
                    break
                kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

        except ClientError as e:
            logger.error(
                "Failed to list delivery logs from DynamoDB",
                webhook_id=webhook_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        # Scans have no guaranteed order
        entries.sort(key=lambda e: e.created_at, reverse=True)

        logger.info(
            "Delivery logs listed",
            webhook_id=webhook_id,
            session_id=session_id,
            status_filter=status.value if status else None,
            count=min(len(entries), limit)
        )
        return entries[:limit]
