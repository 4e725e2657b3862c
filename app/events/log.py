"""
In-process event log.

Append-only, size-bounded journal of domain events with live fan-out to
subscribers. Retention is FIFO: once an event falls off the buffer, cursors
pointing at it are treated as unknown.
"""

import logging
import secrets
import threading
import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from app.clock import iso_timestamp, parse_datetime, to_naive_utc
from app.events.models import DomainEvent

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 500

Listener = Callable[[DomainEvent], None]


class EventLog:
    """Bounded ring buffer of domain events plus subscriber registry."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._events: deque = deque(maxlen=capacity)
        self._listeners: List[Listener] = []
        # Re-entrant so a listener may publish from inside a notification.
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._events)

    def publish(self, resource: str, action: str, payload: Optional[Dict[str, Any]] = None) -> DomainEvent:
        """Append a new event, evicting the oldest when full, and notify subscribers."""
        with self._lock:
            event = DomainEvent(
                id=f"{int(time.time() * 1000)}-{secrets.token_hex(6)}",
                resource=resource,
                action=action,
                timestamp=iso_timestamp(),
                data=payload or {},
            )
            self._events.append(event)
            # Delivery happens inside the critical section so every subscriber
            # sees events in append order.
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.error(f"Event listener failed for {event.name} ({event.id}): {e}", exc_info=True)
        return event

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for future events. Returns an unsubscribe handle."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self._unsubscribe(listener)

    def subscribe_with_backlog(
        self,
        listener: Listener,
        since: Optional[str] = None,
        after_id: Optional[str] = None,
        limit: Union[int, str, None] = None,
    ) -> Tuple[List[DomainEvent], Callable[[], None]]:
        """
        Atomically query the backlog and subscribe.

        No event can be published between the snapshot and the registration,
        so a consumer sees every event exactly once within the retention window.
        """
        with self._lock:
            backlog = self.query(since=since, after_id=after_id, limit=limit)
            unsubscribe = self.subscribe(listener)
        return backlog, unsubscribe

    def _unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def query(
        self,
        since: Optional[str] = None,
        after_id: Optional[str] = None,
        limit: Union[int, str, None] = None,
    ) -> List[DomainEvent]:
        """
        Return retained events, oldest first.

        - after_id found in the buffer: events strictly after it.
        - after_id unknown (evicted or never seen): the whole buffer.
        - since only: events with timestamp > since; an unparseable since
          yields an empty list.
        - limit (positive): keep only the most recent `limit` results.
        """
        with self._lock:
            events = list(self._events)

        if after_id:
            for index, event in enumerate(events):
                if event.id == after_id:
                    events = events[index + 1:]
                    break
        elif since:
            since_dt = parse_datetime(since)
            if since_dt is None:
                events = []
            else:
                since_dt = to_naive_utc(since_dt)
                events = [e for e in events if to_naive_utc(parse_datetime(e.timestamp)) > since_dt]

        numeric_limit = _parse_limit(limit)
        if numeric_limit:
            events = events[-numeric_limit:]

        return events

    def reset(self) -> None:
        """Drop all retained events. Subscribers stay registered."""
        with self._lock:
            self._events.clear()


def _parse_limit(limit: Union[int, str, None]) -> Optional[int]:
    if limit is None or limit == "":
        return None
    try:
        value = int(float(limit))
    except (TypeError, ValueError, OverflowError):
        # "inf" and "1e400" mean no limit
        return None
    return value if value > 0 else None
