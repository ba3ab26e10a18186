import logging
import socket
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from displaydata.core.config import Settings
from displaydata.core.dependencies import get_consumer, get_event_log, get_settings
from displaydata.core.events import EventConsumer
from displaydata.core.exceptions import ValidationException
from displaydata.schemas.events import EventCreate
from displaydata.services.event_log import DEFAULT_QUERY_LIMIT, EventLog

router = APIRouter(tags=["analytics"])
logger = logging.getLogger(__name__)

# Handlers are coroutines so they run on the same event loop as the consumer
# and never observe the event log mid-append.


@router.get("/events")
async def list_events(
    source: Optional[str] = Query(None, description="Exact match on the producing service"),
    action: Optional[str] = Query(None, description="Exact match on the domain verb"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, description="Most recent N matches, at least 1"),
    settings: Settings = Depends(get_settings),
    event_log: EventLog = Depends(get_event_log),
):
    try:
        result = event_log.query(source=source, action=action, limit=limit)
    except ValueError as e:
        raise ValidationException(message="Invalid query parameters", errors={"limit": str(e)})
    return {
        "service": settings.SERVICE_NAME,
        "hostname": socket.gethostname(),
        "total": result.total,
        "returned": result.returned,
        "events": [e.to_response() for e in result.events],
    }


@router.post("/events", status_code=status.HTTP_201_CREATED)
async def ingest_event(
    body: EventCreate,
    settings: Settings = Depends(get_settings),
    event_log: EventLog = Depends(get_event_log),
):
    """Direct HTTP ingestion. Stored events carry no Kafka metadata."""
    event = event_log.append(body.to_payload())
    logger.info(
        "Event received over HTTP",
        extra={"eventId": event.id, "source": event.source, "action": event.action}
    )
    return {"service": settings.SERVICE_NAME, "event": event.to_response()}


@router.get("/stats")
async def event_stats(
    settings: Settings = Depends(get_settings),
    event_log: EventLog = Depends(get_event_log),
    consumer: EventConsumer = Depends(get_consumer),
):
    stats = event_log.aggregate()
    return {
        "service": settings.SERVICE_NAME,
        "totalEvents": stats.total_events,
        "messagesConsumed": consumer.messages_consumed,
        "kafka": {
            "connected": consumer.is_connected,
            "topic": consumer.topic,
            "groupId": consumer.group_id,
        },
        "bySource": stats.by_source,
        "byAction": stats.by_action,
    }
