"""
Sync endpoints.

External consumers replicate state changes by polling /events with a cursor or
by holding a Server-Sent Events stream open.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import StreamingResponse

from app.events.sync import SyncGateway, format_sse
from app.routes.deps import get_sync_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/events")
async def list_events(
    since: Optional[str] = None,
    lastEventId: Optional[str] = None,
    limit: Optional[str] = None,
    gateway: SyncGateway = Depends(get_sync_gateway),
):
    """Events after the cursor. An unparseable `since` returns an empty list."""
    events = gateway.events_since(since=since, last_event_id=lastEventId, limit=limit)
    return [event.model_dump() for event in events]


@router.get("/stream")
async def stream_events(
    request: Request,
    since: Optional[str] = None,
    lastEventId: Optional[str] = None,
    limit: Optional[str] = None,
    last_event_id_header: Optional[str] = Header(default=None, alias="Last-Event-ID"),
    gateway: SyncGateway = Depends(get_sync_gateway),
):
    """
    Server-Sent Events stream: backlog, then live events, with a heartbeat
    frame every heartbeat interval.

    SSE Format:
        id: <event id>
        event: <resource>.<action>
        data: <event json>
    """
    cursor = last_event_id_header or lastEventId
    return StreamingResponse(
        _sse_frames(request, gateway, since, cursor, limit),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


async def _sse_frames(request: Request, gateway: SyncGateway, since, last_event_id, limit):
    stream = gateway.stream_from(since=since, last_event_id=last_event_id, limit=limit)
    try:
        async for item in stream:
            if await request.is_disconnected():
                logger.info("SSE: Client disconnected")
                break
            yield format_sse(item)
    finally:
        await stream.aclose()
