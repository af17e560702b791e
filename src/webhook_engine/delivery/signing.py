"""
Module: delivery/signing.py
Description: Request authentication for outbound webhooks.

Computes the authentication headers for a subscriber's configured
scheme. HMAC signatures are computed over the exact body bytes that
will be transmitted.
"""

import base64
import hashlib
import hmac
from typing import Dict

from webhook_engine.exceptions import MissingCredentialsError
from webhook_engine.models.subscriber import AuthType, Subscriber

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_ALGORITHM_HEADER = "X-Webhook-Signature-Algorithm"
SIGNATURE_ALGORITHM = "sha256"


def generate_hmac_signature(body: bytes, secret: str) -> str:
    """
    Generate an HMAC SHA-256 signature for a webhook body.

    Args:
        body: Exact payload bytes
        secret: HMAC secret key

    Returns:
        Base64-encoded HMAC digest
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, secret: str, signature: str) -> bool:
    """Check a received signature against the body in constant time."""
    expected = generate_hmac_signature(body, secret)
    return hmac.compare_digest(expected, signature)


def sign_request(subscriber: Subscriber, body: bytes) -> Dict[str, str]:
    """
    Build the authentication headers for a subscriber.

    Args:
        subscriber: Subscriber whose auth scheme applies
        body: Exact payload bytes that will be sent

    Returns:
        Authentication headers (empty for auth_type none)

    Raises:
        MissingCredentialsError: If the scheme needs a secret and none is set
    """
    auth_type = subscriber.auth_type
    if auth_type == AuthType.NONE:
        return {}

    token = subscriber.auth_token
    if not token:
        raise MissingCredentialsError(subscriber.id, auth_type.value)

    if auth_type == AuthType.BEARER:
        return {"Authorization": f"Bearer {token}"}

    if auth_type == AuthType.BASIC:
        # Token is stored pre-encoded
        return {"Authorization": f"Basic {token}"}

    return {
        SIGNATURE_HEADER: generate_hmac_signature(body, token),
        SIGNATURE_ALGORITHM_HEADER: SIGNATURE_ALGORITHM,
    }


def build_request_headers(subscriber: Subscriber, body: bytes) -> Dict[str, str]:
    """
    Assemble every header for an outbound request.

    Content-Type first, then the subscriber's static headers, then the
    authentication headers, which win on conflict.

    Raises:
        MissingCredentialsError: If the scheme needs a secret and none is set
    """
    headers = {"Content-Type": "application/json"}
    headers.update(subscriber.headers)
    headers.update(sign_request(subscriber, body))
    return headers
