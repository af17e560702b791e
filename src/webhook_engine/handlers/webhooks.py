"""
Module: webhooks.py
Description: Webhook test delivery and delivery log endpoints.

Implements the operator-facing endpoints of the delivery engine:
- POST /webhooks/{webhook_id}/test: Synchronous, unretried test delivery
- GET /webhooks/{webhook_id}/deliveries: Delivery log for one webhook
- GET /deliveries/{log_id}: One delivery log entry

Dependencies: FastAPI, typing, models, delivery, utils
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as status_codes

from webhook_engine.delivery.engine import WebhookDeliveryEngine
from webhook_engine.exceptions import SubscriberNotFoundError
from webhook_engine.handlers.dependencies import get_engine
from webhook_engine.models.delivery import DeliveryLogEntry, DeliveryStatus, TestDeliveryResult
from webhook_engine.models.response import DeliveryLogListResponse
from webhook_engine.utils.logger import get_logger

router = APIRouter(tags=["webhooks"])
logger = get_logger(__name__)


@router.post("/webhooks/{webhook_id}/test", response_model=TestDeliveryResult)
async def test_webhook(
    webhook_id: str,
    engine: WebhookDeliveryEngine = Depends(get_engine)
) -> TestDeliveryResult:
    """
    Send a sample event to a webhook and report the result.

    Raises:
        HTTPException: 404 if the webhook does not exist
        HTTPException: 500 if the attempt could not be recorded

    Example:
        POST /webhooks/wh_123/test

        Response (200):
        {"success": true, "response_code": 200, "response_body": "ok", "error": null}
    """
    try:
        return await engine.test_delivery(webhook_id)

    except SubscriberNotFoundError:
        raise HTTPException(
            status_code=status_codes.HTTP_404_NOT_FOUND,
            detail=f"Webhook {webhook_id} not found"
        )

    except Exception as e:
        logger.error("Test delivery failed", webhook_id=webhook_id, error=str(e))
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run test delivery"
        )


@router.get("/webhooks/{webhook_id}/deliveries", response_model=DeliveryLogListResponse)
async def list_webhook_deliveries(
    webhook_id: str,
    session_id: Optional[str] = None,
    status: Optional[DeliveryStatus] = None,
    limit: int = Query(default=20, ge=1, le=100),
    engine: WebhookDeliveryEngine = Depends(get_engine)
) -> DeliveryLogListResponse:
    """
    List delivery attempts for a webhook, newest first.

    Raises:
        HTTPException: 500 if the log store fails
    """
    try:
        logs = await engine.log_store.list_delivery_logs(
            webhook_id=webhook_id,
            session_id=session_id,
            status=status,
            limit=limit
        )

    except Exception as e:
        logger.error("Failed to list delivery logs", webhook_id=webhook_id, error=str(e))
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve delivery logs"
        )

    return DeliveryLogListResponse(logs=logs, count=len(logs), limit=limit)


@router.get("/deliveries/{log_id}", response_model=DeliveryLogEntry)
async def get_delivery(
    log_id: str,
    engine: WebhookDeliveryEngine = Depends(get_engine)
) -> DeliveryLogEntry:
    """
    Retrieve one delivery attempt.

    Raises:
        HTTPException: 404 if the entry does not exist
        HTTPException: 500 if the log store fails
    """
    try:
        entry = await engine.log_store.get_delivery_log(log_id)

    except Exception as e:
        logger.error("Failed to retrieve delivery log", log_id=log_id, error=str(e))
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve delivery log"
        )

    if entry is None:
        raise HTTPException(
            status_code=status_codes.HTTP_404_NOT_FOUND,
            detail=f"Delivery {log_id} not found"
        )
    return entry
