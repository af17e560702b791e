"""
Module: push.py
Description: Single-attempt HTTP delivery to a webhook endpoint.

Implements one HTTP attempt with timeout handling, duration
measurement and outcome classification. Never raises for HTTP or
transport failures; both come back as a structured AttemptResult.
Anything else is a bug and propagates to the retry driver.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx

from webhook_engine.models.delivery import AttemptResult, ErrorType
from webhook_engine.utils.logger import get_logger

logger = get_logger(__name__)


def is_success_status(status_code: int) -> bool:
    """2xx and 3xx responses count as delivered; redirects are not followed."""
    return 200 <= status_code < 400


class DeliveryExecutor:
    """
    HTTP client performing exactly one delivery attempt per call.

    Handles delivery attempts with proper timeout and error handling
    for network issues. A shared httpx.AsyncClient may be injected to
    pool connections across attempts; otherwise one is created per call.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        connect_timeout_seconds: float = 5.0,
        response_body_limit: int = 10000,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the executor.

        Args:
            timeout_seconds: Overall deadline for one attempt, in seconds
            connect_timeout_seconds: Connect timeout in seconds
            response_body_limit: Maximum response body characters kept
            client: Optional shared AsyncClient

        Raises:
            ValueError: If a timeout is not positive
        """
        if timeout_seconds <= 0 or connect_timeout_seconds <= 0:
            raise ValueError("timeouts must be positive")

        self.timeout_seconds = timeout_seconds
        self.timeout = httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds)
        self.response_body_limit = response_body_limit
        self._client = client

        logger.info(
            "Delivery executor initialized",
            timeout_seconds=timeout_seconds,
            connect_timeout_seconds=connect_timeout_seconds,
            shared_client=client is not None
        )

    async def execute(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: bytes
    ) -> AttemptResult:
        """
        Perform one HTTP attempt.

        Args:
            method: HTTP method
            url: Target URL
            headers: Complete, already-signed request headers
            body: Exact body bytes

        Returns:
            AttemptResult describing the outcome
        """
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        def finish(**fields) -> AttemptResult:
            return AttemptResult(
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                duration_ms=int((time.monotonic() - start) * 1000),
                **fields
            )

        logger.debug("Attempting webhook delivery", url=url, method=method)

        try:
            response = await asyncio.wait_for(
                self._send(method, url, headers, body),
                timeout=self.timeout_seconds
            )

        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.warning("Webhook delivery timeout", url=url, timeout_seconds=self.timeout_seconds)
            return finish(
                success=False,
                error_message=f"Request timed out after {self.timeout_seconds}s",
                error_type=ErrorType.NETWORK_ERROR
            )

        except (httpx.HTTPError, OSError) as e:
            logger.warning(
                "Webhook delivery network error",
                url=url,
                error=str(e),
                error_class=type(e).__name__
            )
            return finish(
                success=False,
                error_message=str(e) or type(e).__name__,
                error_type=ErrorType.NETWORK_ERROR
            )

        status_code, response_headers, response_text = response
        success = is_success_status(status_code)

        if success:
            logger.info("Webhook delivered", url=url, status_code=status_code)
        else:
            logger.warning(
                "Webhook delivery HTTP error",
                url=url,
                status_code=status_code,
                response=response_text[:500]
            )

        return finish(
            success=success,
            status_code=status_code,
            response_headers=response_headers,
            response_body=response_text[:self.response_body_limit]
        )

    async def _send(self, method: str, url: str, headers: Dict[str, str], body: bytes):
        if self._client is not None:
            return await self._request(self._client, method, url, headers, body)

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=False) as client:
            return await self._request(client, method, url, headers, body)

    async def _request(self, client: httpx.AsyncClient, method, url, headers, body):
        async with client.stream(
            method,
            url,
            headers=headers,
            content=body,
            timeout=self.timeout,
            follow_redirects=False
        ) as response:
            text = await self._read_body(response)
            return response.status_code, dict(response.headers.items()), text

    async def _read_body(self, response: httpx.Response) -> str:
        """Read at most response_body_limit characters; the rest of the body is left unread."""
        chunks = []
        remaining = self.response_body_limit
        if remaining <= 0:
            return ""

        async for chunk in response.aiter_text():
            chunks.append(chunk[:remaining])
            remaining -= len(chunks[-1])
            if remaining <= 0:
                break
        return "".join(chunks)
