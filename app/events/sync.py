"""
Sync gateway.

Read side of the event log for external consumers: a one-shot "events since
cursor" query and a live stream (backlog first, then live events with periodic
heartbeats).
"""

import asyncio
import json
import logging
from typing import AsyncIterator, List, Optional, Union

from app.events.log import EventLog
from app.events.models import DomainEvent, Heartbeat, StreamItem

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30.0


class SyncGateway:
    """Cursor-based access to the event log."""

    def __init__(self, event_log: EventLog, heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL):
        self.event_log = event_log
        self.heartbeat_interval = heartbeat_interval

    def events_since(
        self,
        since: Optional[str] = None,
        last_event_id: Optional[str] = None,
        limit: Union[int, str, None] = None,
    ) -> List[DomainEvent]:
        """Events after the given cursor, oldest first."""
        return self.event_log.query(since=since, after_id=last_event_id, limit=limit)

    async def stream_from(
        self,
        since: Optional[str] = None,
        last_event_id: Optional[str] = None,
        limit: Union[int, str, None] = None,
    ) -> AsyncIterator[StreamItem]:
        """
        Yield the backlog, then every newly published event as it happens.

        A Heartbeat is interleaved every heartbeat_interval seconds. The listener
        is removed as soon as the consumer stops iterating (disconnect,
        cancellation or aclose()).
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def _on_event(event: DomainEvent) -> None:
            # Publishers may run on worker threads.
            loop.call_soon_threadsafe(queue.put_nowait, event)

        backlog, unsubscribe = self.event_log.subscribe_with_backlog(
            _on_event, since=since, after_id=last_event_id, limit=limit
        )
        logger.info(f"Sync stream opened with {len(backlog)} backlog event(s)")

        try:
            for event in backlog:
                yield event

            next_heartbeat = loop.time() + self.heartbeat_interval
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=max(0.0, next_heartbeat - loop.time()))
                except asyncio.TimeoutError:
                    next_heartbeat = loop.time() + self.heartbeat_interval
                    yield Heartbeat()
                    continue
                yield event
        finally:
            unsubscribe()
            logger.info("Sync stream closed")


def format_sse(item: StreamItem) -> str:
    """Format a stream item as a Server-Sent Events frame."""
    if isinstance(item, Heartbeat):
        return "event: heartbeat\ndata: {}\n\n"
    return (
        f"id: {item.id}\n"
        f"event: {item.name}\n"
        f"data: {json.dumps(item.model_dump())}\n\n"
    )
