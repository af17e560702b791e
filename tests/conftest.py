"""
Module: conftest.py
Description: Shared pytest fixtures for webhook engine tests.

Provides reusable subscribers, in-memory stores, a no-wait sleep for
retry chains and moto-backed DynamoDB tables with the same schema as
production.
"""

import pytest
import boto3
from moto import mock_aws

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from webhook_engine.models.subscriber import AuthType, BackoffType, RetryPolicy, Subscriber
from webhook_engine.storage.memory import InMemoryDeliveryLogStore, InMemorySubscriberStore


class TestSettings(BaseSettings):
    """Test settings that don't require environment variables."""

    __test__ = False

    model_config = SettingsConfigDict(
        env_file=None,  # Disable .env file loading for tests
        case_sensitive=False,
        extra="ignore"
    )

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")

    # DynamoDB settings
    webhooks_table_name: str = Field(
        default="test-webhooks-table",
        description="Name of the DynamoDB webhooks table"
    )
    delivery_logs_table_name: str = Field(
        default="test-delivery-logs-table",
        description="Name of the DynamoDB delivery logs table"
    )


class SleepRecorder:
    """Async sleep replacement that records waits instead of sleeping."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def test_settings():
    """
    Provide test configuration settings.

    Disables environment variable loading for predictable tests.
    """
    return TestSettings()


@pytest.fixture
def no_sleep():
    """Provide a sleep that returns immediately and records each wait."""
    return SleepRecorder()


@pytest.fixture
def hmac_subscriber():
    """
    Provide an agent-scoped subscriber signing with HMAC.

    Subscribes to session_completed for agent-1 only.
    """
    return Subscriber(
        id="wh_hmac",
        user_id="user-1",
        agent_id="agent-1",
        url="https://hooks.example.com/w1",
        auth_type=AuthType.HMAC,
        auth_token="s3cr3t",
        triggers=["session_completed"],
        retry_policy=RetryPolicy(
            max_retries=2,
            backoff_type=BackoffType.EXPONENTIAL,
            initial_delay_ms=1000
        )
    )


@pytest.fixture
def global_subscriber():
    """
    Provide a global subscriber without authentication.

    Receives session_completed for every agent.
    """
    return Subscriber(
        id="wh_global",
        user_id="user-1",
        agent_id=None,
        url="https://hooks.example.com/w2",
        auth_type=AuthType.NONE,
        triggers=["session_completed", "session_started"],
        retry_policy=RetryPolicy(max_retries=0)
    )


@pytest.fixture
def subscriber_store(hmac_subscriber, global_subscriber):
    """Provide an in-memory subscriber store holding both sample subscribers."""
    return InMemorySubscriberStore([hmac_subscriber, global_subscriber])


@pytest.fixture
def log_store():
    """Provide an empty in-memory delivery log."""
    return InMemoryDeliveryLogStore()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def mock_dynamodb(aws_credentials):
    """Run the test inside a moto AWS mock."""
    with mock_aws():
        yield boto3.resource('dynamodb', region_name='us-east-1')


@pytest.fixture
def webhooks_table(mock_dynamodb, test_settings):
    """
    Create mock DynamoDB table for webhook subscribers.

    Same key schema as production: hash key "id".
    """
    return mock_dynamodb.create_table(
        TableName=test_settings.webhooks_table_name,
        KeySchema=[
            {
                'AttributeName': 'id',
                'KeyType': 'HASH'
            }
        ],
        AttributeDefinitions=[
            {
                'AttributeName': 'id',
                'AttributeType': 'S'
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )


@pytest.fixture
def delivery_logs_table(mock_dynamodb, test_settings):
    """
    Create mock DynamoDB table for delivery attempts.

    Includes the WebhookIndex GSI used to browse one webhook's log.
    """
    return mock_dynamodb.create_table(
        TableName=test_settings.delivery_logs_table_name,
        KeySchema=[
            {
                'AttributeName': 'id',
                'KeyType': 'HASH'
            }
        ],
        AttributeDefinitions=[
            {
                'AttributeName': 'id',
                'AttributeType': 'S'
            },
            {
                'AttributeName': 'webhook_id',
                'AttributeType': 'S'
            },
            {
                'AttributeName': 'created_at',
                'AttributeType': 'S'
            }
        ],
        GlobalSecondaryIndexes=[
            {
                'IndexName': 'WebhookIndex',
                'KeySchema': [
                    {
                        'AttributeName': 'webhook_id',
                        'KeyType': 'HASH'
                    },
                    {
                        'AttributeName': 'created_at',
                        'KeyType': 'RANGE'
                    }
                ],
                'Projection': {
                    'ProjectionType': 'ALL'
                }
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )
