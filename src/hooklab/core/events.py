"""
Hooklab Event Log

Bounded, time-ordered record of captured webhook requests.

Events are kept most-recent-first. Storing into a full log evicts the
oldest entry, so the log never holds more than ``max_events`` events.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Set

DEFAULT_MAX_EVENTS = 50


@dataclass(frozen=True)
class Event:
    """A captured webhook request. Never mutated after creation."""

    id: int
    timestamp: datetime
    method: str
    path: str
    key: str
    headers: Dict[str, List[str]] = field(default_factory=dict)
    body: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'method': self.method,
            'path': self.path,
            'key': self.key,
            'headers': {name: list(values) for name, values in self.headers.items()},
            'body': self.body
        }


class EventLog:
    """
    In-memory log of the most recent webhook events.

    Example:
        log = EventLog()
        event = log.store('POST', '/webhook/orders', 'orders', {}, '{"id": 1}')
        recent = log.list('orders')
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS, lock: Optional[threading.RLock] = None):
        """
        Initialize event log.

        Args:
            max_events: Maximum number of events kept in memory
            lock: Lock shared with the other state components (created if None)
        """
        self.max_events = max_events
        self._lock = lock or threading.RLock()
        self._events: List[Event] = []
        self._last_id = 0

    def store(
        self,
        method: str,
        path: str,
        key: str,
        headers: Optional[Dict[str, List[str]]],
        body: str
    ) -> Event:
        """
        Record a webhook request.

        Args:
            method: HTTP method
            path: Request path
            key: Webhook key
            headers: Request headers (name -> values)
            body: Raw request body

        Returns:
            The stored Event
        """
        headers_copy = {name: list(values) for name, values in (headers or {}).items()}

        with self._lock:
            self._last_id += 1
            event = Event(
                id=self._last_id,
                timestamp=datetime.now(timezone.utc),
                method=method,
                path=path,
                key=key,
                headers=headers_copy,
                body=body
            )
            self._events.insert(0, event)
            del self._events[self.max_events:]

        return event

    def list(self, key: Optional[str] = None) -> List[Event]:
        """
        Snapshot of stored events, most recent first.

        Args:
            key: Only return events for this webhook key (None or "" = all)

        Returns:
            List of events
        """
        with self._lock:
            if not key:
                return list(self._events)
            return [event for event in self._events if event.key == key]

    def keys(self) -> Set[str]:
        """Webhook keys of the events currently held."""
        with self._lock:
            return {event.key for event in self._events}

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
