"""
Module: settings.py
Description: Application configuration using pydantic-settings.

Configures the webhook engine from environment variables with
validation and defaults. Supports .env files for local development.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application settings
    app_name: str = Field(default="Webhook Delivery Engine", description="Application name")
    app_version: str = Field(default="0.3.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")
    stage: str = Field(default="dev", description="Deployment stage")

    # DynamoDB settings
    webhooks_table_name: str = Field(
        default="webhooks",
        description="Name of the DynamoDB table holding webhook subscribers"
    )
    delivery_logs_table_name: str = Field(
        default="delivery-logs",
        description="Name of the DynamoDB table holding delivery attempts"
    )

    # SQS settings
    retry_queue_url: str = Field(
        default="",
        description="URL of the SQS queue for scheduled retries (empty = in-process retries)"
    )

    # Delivery settings
    delivery_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="HTTP timeout in seconds for a single delivery attempt"
    )
    connect_timeout: float = Field(
        default=5.0,
        gt=0,
        le=30,
        description="HTTP connect timeout in seconds"
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Upper bound on in-flight HTTP delivery attempts per engine"
    )
    response_body_limit: int = Field(
        default=10000,
        ge=0,
        description="Maximum number of response body characters kept in the delivery log"
    )
    enforce_rate_limits: bool = Field(
        default=True,
        description="Apply each subscriber's per-minute rate limit ahead of dispatch"
    )

    # Metrics settings
    metrics_namespace: str = Field(default="WebhookEngine", description="CloudWatch namespace")
    metrics_enabled: bool = Field(default=False, description="Publish CloudWatch metrics")

    @field_validator('webhooks_table_name', 'delivery_logs_table_name')
    @classmethod
    def validate_table_names(cls, v: str) -> str:
        """Validate DynamoDB table names."""
        if not v or not isinstance(v, str):
            raise ValueError("Table name must be a non-empty string")

        # Allow alphanumeric, hyphens, underscores, dots
        if not re.match(r'^[a-zA-Z0-9_.-]+$', v):
            raise ValueError(
                "Table name must contain only letters, numbers, dots, hyphens, and underscores"
            )

        return v

    @field_validator('retry_queue_url')
    @classmethod
    def validate_queue_url(cls, v: str) -> str:
        """Validate the retry queue URL when one is configured."""
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError("retry_queue_url must be an HTTP/HTTPS URL")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()


# Global settings instance
settings = Settings()
