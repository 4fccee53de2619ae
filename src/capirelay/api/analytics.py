"""
Analytics API endpoints.

Main endpoint: POST /api/v1/analytics/track
"""

import json
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Request

from ..core.dispatch import Dispatcher
from ..core.exceptions import ForwarderError, ValidationError
from ..core.forwarder import CapiForwarder
from ..models.event import EnrichedUserData, parse_inbound_event
from ..models.responses import ErrorResponse, PingResponse, TrackResponse

logger = structlog.get_logger(__name__)

router = APIRouter()

USER_AGENT_LOG_LENGTH = 100


def get_forwarder(request: Request) -> CapiForwarder:
    """Dependency to get the forwarder from app state."""
    forwarder = getattr(request.app.state, "forwarder", None)
    if forwarder is None:
        raise ForwarderError("CAPI forwarder not initialized")
    return forwarder


def get_dispatcher(request: Request) -> Dispatcher:
    """Dependency to get the dispatcher from app state."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise ForwarderError("Dispatcher not initialized")
    return dispatcher


def resolve_client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For entry, else the connection's remote address."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def _truncate(value: Optional[str], length: int = USER_AGENT_LOG_LENGTH) -> str:
    if not value:
        return "N/A"
    return value if len(value) <= length else value[:length] + "..."


async def read_json_body(request: Request) -> Any:
    """Decode the request body, mapping malformed JSON to a 400."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError("Malformed JSON in request body.", details={"error": str(e)}) from e


@router.post(
    "/track",
    response_model=TrackResponse,
    response_model_by_alias=True,
    status_code=202,
    responses={
        400: {"model": ErrorResponse, "description": "Missing or invalid event fields"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Track a conversion event",
    description="""
    Accept a browser conversion event and relay it to the Facebook Conversions API.

    **Processing:**
    1. Parse and validate the event
    2. Enrich user data with client IP and user agent
    3. Dispatch the forward in the background
    4. Acknowledge with 202

    The 202 acknowledges receipt only. Forwarding failures are logged and
    never reported back to the caller.

    **Required fields:** eventName, eventId, eventSourceUrl
    """,
)
async def track_event(
    request: Request,
    forwarder: CapiForwarder = Depends(get_forwarder),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> TrackResponse:
    """
    Validate, enrich and dispatch one conversion event.
    """
    body = await read_json_body(request)
    logger.debug("Received event body", body=body)

    try:
        event = parse_inbound_event(body)
    except ValidationError as e:
        logger.warning("Validation Error: event rejected", error=str(e), details=e.details)
        raise

    client_ip_address = resolve_client_ip(request)
    client_user_agent = request.headers.get("user-agent")

    log = logger.bind(event_name=event.event_name, event_id=event.event_id)
    log.info(
        "Processing event",
        event_source_url=event.event_source_url,
        client_ip_address=client_ip_address,
        client_user_agent=_truncate(client_user_agent),
    )

    user_data = EnrichedUserData.from_request(
        event.user_data,
        client_ip_address=client_ip_address,
        client_user_agent=client_user_agent,
    )

    await dispatcher.dispatch(
        lambda: forwarder.forward(event, user_data),
        event_name=event.event_name,
        event_id=event.event_id,
    )

    log.info("Responding to client")
    return TrackResponse(
        message=f"Event '{event.event_name}' (ID: {event.event_id}) received and queued for processing.",
        event_id=event.event_id,
    )


@router.get(
    "/ping",
    response_model=PingResponse,
    summary="Liveness check",
)
async def ping() -> PingResponse:
    """Always 200 while the service is up."""
    return PingResponse(message="Analytics routes are alive!")
