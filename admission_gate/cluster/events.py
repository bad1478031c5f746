"""
admission_gate/cluster/events.py
────────────────────────────────
Event recorder contract and a bounded in-memory recorder.

Recording is fire-and-forget: a full buffer drops the event (logged at
debug level) instead of blocking or raising, so an event can never fail
a reconcile.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import List, Optional, Protocol

from pydantic import BaseModel

from admission_gate.cluster.object_store import kind_of
from admission_gate.shared.models import Event, EventType

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE: int = 1000


class EventRecorder(Protocol):
    def record(self, obj: BaseModel, event_type: EventType, reason: str, message: str) -> None:
        ...


class InMemoryEventRecorder:
    """
    Keeps the most recent events in a bounded buffer.

    Args:
        buffer_size: Maximum events held. Once full, new events are dropped
                     until ``drain()`` empties the buffer.
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._events: deque = deque()
        self._buffer_size = buffer_size
        self._lock = threading.Lock()
        self.dropped: int = 0

    def record(self, obj: BaseModel, event_type: EventType, reason: str, message: str) -> None:
        event = Event(
            kind=kind_of(obj),
            key=obj.metadata.key,
            type=event_type,
            reason=reason,
            message=message,
        )
        with self._lock:
            if len(self._events) >= self._buffer_size:
                self.dropped += 1
                logger.debug("event buffer full, dropping %s %s", reason, event.key)
                return
            self._events.append(event)

    @property
    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def drain(self) -> List[Event]:
        """Return and forget every buffered event."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
            return events

    def find(self, reason: str, event_type: Optional[EventType] = None) -> List[Event]:
        return [
            e for e in self.events
            if e.reason == reason and (event_type is None or e.type == event_type)
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
