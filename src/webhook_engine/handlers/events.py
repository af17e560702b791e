"""
Module: events.py
Description: Lifecycle event trigger endpoint.

Implements the endpoint event producers call when an agent lifecycle
event fires:
- POST /events/trigger: Accept an event and fan it out in the background

Delivery is fire-and-forget from the caller's perspective; outcomes
are visible only through the delivery log.

Dependencies: FastAPI, models, delivery, utils
"""

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi import status as status_codes

from webhook_engine.delivery.engine import WebhookDeliveryEngine
from webhook_engine.handlers.dependencies import get_engine
from webhook_engine.models.request import TriggerEventRequest
from webhook_engine.models.response import TriggerAcceptedResponse
from webhook_engine.utils.logger import get_logger

router = APIRouter(prefix="/events", tags=["events"])
logger = get_logger(__name__)


async def deliver_event(engine: WebhookDeliveryEngine, request: TriggerEventRequest) -> None:
    """Background task running the fan-out for an accepted event."""
    try:
        outcomes = await engine.trigger(
            request.event,
            session=request.session,
            agent=request.agent,
            agent_id=request.scope(),
            session_id=request.correlation_id()
        )
    except Exception as e:
        logger.error(
            "Event fan-out failed before delivery",
            trigger=request.event,
            agent_id=request.scope(),
            error=str(e),
            error_class=type(e).__name__
        )
        return

    logger.info(
        "Background delivery finished",
        trigger=request.event,
        subscribers=len(outcomes),
        succeeded=sum(1 for o in outcomes if o.success)
    )


@router.post(
    "/trigger",
    status_code=status_codes.HTTP_202_ACCEPTED,
    response_model=TriggerAcceptedResponse
)
async def trigger_event(
    request: TriggerEventRequest,
    background_tasks: BackgroundTasks,
    engine: WebhookDeliveryEngine = Depends(get_engine)
) -> TriggerAcceptedResponse:
    """
    Accept a lifecycle event for delivery.

    Args:
        request: TriggerEventRequest with event name and session data
        background_tasks: FastAPI background task queue
        engine: Webhook delivery engine (injected via dependency)

    Returns:
        TriggerAcceptedResponse (202 Accepted)

    Example:
        POST /events/trigger
        {
            "event": "session_completed",
            "session": {"session_id": "sess-1", "agent_id": "agent-1"},
            "agent_id": "agent-1"
        }

        Response (202 Accepted):
        {
            "event": "session_completed",
            "agent_id": "agent-1",
            "session_id": "sess-1",
            "message": "Event accepted for delivery"
        }
    """
    background_tasks.add_task(deliver_event, engine, request)

    logger.info(
        "Event accepted",
        trigger=request.event,
        agent_id=request.scope(),
        session_id=request.correlation_id()
    )

    return TriggerAcceptedResponse(
        event=request.event,
        agent_id=request.scope(),
        session_id=request.correlation_id()
    )
