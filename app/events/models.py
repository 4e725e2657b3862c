"""Data models for the domain event log."""

from typing import Any, Dict, Literal, Union
from pydantic import BaseModel, ConfigDict


class DomainEvent(BaseModel):
    """An immutable record of a state change."""
    model_config = ConfigDict(frozen=True)

    id: str  # "<epoch-ms>-<random hex>", sortable by publish time
    resource: str  # "task", "board", ...
    action: str  # "created", "updated", "moved", "deleted", ...
    timestamp: str  # ISO-8601 UTC
    data: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        """SSE event name, e.g. "task.moved"."""
        return f"{self.resource}.{self.action}"


class Heartbeat(BaseModel):
    """Keep-alive marker interleaved into a live stream."""
    event: Literal["heartbeat"] = "heartbeat"


StreamItem = Union[DomainEvent, Heartbeat]
