"""Audit event recorder.

Stands in for the cluster's event sink: keeps a bounded history of
recorded events and fans each one out to in-process subscribers.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from nsalloc.core.clock import Clock, SystemClock
from nsalloc.core.types import AuditEvent, EventType

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSink(Protocol):
    """Receives audit events."""

    def record(
        self,
        kind: str,
        name: str,
        event_type: EventType,
        reason: str,
        message: str,
    ) -> AuditEvent: ...


class EventRecorder:
    """Thread-safe audit event recorder.

    Subscribers are invoked outside the lock on a snapshot of the
    subscriber list; a failing subscriber is logged and does not stop
    delivery to the others.
    """

    def __init__(self, max_events: int = 1000, clock: Clock | None = None):
        if max_events < 1:
            raise ValueError(f"max_events must be >= 1, got {max_events}")
        self._lock = threading.Lock()
        self._events: deque[AuditEvent] = deque(maxlen=max_events)
        self._subscribers: list[Callable[[AuditEvent], None]] = []
        self._clock = clock or SystemClock()

    def subscribe(self, callback: Callable[[AuditEvent], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[AuditEvent], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def record(
        self,
        kind: str,
        name: str,
        event_type: EventType,
        reason: str,
        message: str,
    ) -> AuditEvent:
        event = AuditEvent(
            kind=kind,
            name=name,
            type=event_type,
            reason=reason,
            message=message,
            timestamp=self._clock.now(),
        )
        with self._lock:
            self._events.append(event)
            callbacks = list(self._subscribers)

        level = logging.WARNING if event_type is EventType.WARNING else logging.INFO
        logger.log(level, "Event %s %s/%s: %s", reason, kind, name, message)

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber error on '%s'", reason)
        return event

    @property
    def events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

    def events_for(self, name: str) -> list[AuditEvent]:
        """All retained events about the object called *name*."""
        with self._lock:
            return [e for e in self._events if e.name == name]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
