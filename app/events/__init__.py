"""Domain event log and sync gateway."""

from app.events.models import DomainEvent, Heartbeat
from app.events.log import EventLog
from app.events.sync import SyncGateway, format_sse

__all__ = [
    "DomainEvent",
    "Heartbeat",
    "EventLog",
    "SyncGateway",
    "format_sse",
]
