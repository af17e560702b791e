"""
Module: exceptions.py
Description: Exceptions raised by the webhook engine.
"""


class WebhookEngineError(Exception):
    """Base class for webhook engine errors."""


class ConfigurationError(WebhookEngineError):
    """A subscriber's configuration prevents delivery."""


class MissingCredentialsError(ConfigurationError):
    """The subscriber's auth scheme requires a secret and none is configured."""

    def __init__(self, webhook_id: str, auth_type: str):
        self.webhook_id = webhook_id
        self.auth_type = auth_type
        super().__init__(
            f"Webhook {webhook_id} uses '{auth_type}' authentication but has no secret configured"
        )


class SubscriberNotFoundError(WebhookEngineError):
    """No subscriber exists with the requested id."""

    def __init__(self, webhook_id: str):
        self.webhook_id = webhook_id
        super().__init__(f"Webhook {webhook_id} not found")
