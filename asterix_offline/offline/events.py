# =============================================================================
# asterix_offline/offline/events.py
# Typed Event Channel for Sync Lifecycle Notifications
# =============================================================================

from __future__ import annotations
import itertools
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from asterix_offline.utils import now_ms

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Events emitted by the sync coordinator (and proxied by the gateway)."""
    ONLINE = "online"
    OFFLINE = "offline"
    SYNC_START = "sync_start"
    SYNC_PROGRESS = "sync_progress"
    SYNC_COMPLETE = "sync_complete"
    SYNC_ERROR = "sync_error"
    SYNC_SKIPPED = "sync_skipped"
    SYNC_CONFLICT = "sync_conflict"
    OPERATION_QUEUED = "operation_queued"


@dataclass(frozen=True)
class SyncEvent:
    """One emission: its type, payload and emission time (epoch ms)."""
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_ms)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]


Handler = Callable[[SyncEvent], None]


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to detach."""

    def __init__(self, channel: EventChannel, token: int):
        self._channel = channel
        self._token = token
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._remove(self._token)
            self.active = False


class EventChannel:
    """
    In-process event channel with per-type routing.

    Every subscriber registered when emit() is called receives that emission
    exactly once, in subscription order. A failing handler is logged and
    does not affect the others.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counter = itertools.count()
        # token -> (event type or None for all, handler)
        self._subscribers: Dict[int, Tuple[Optional[EventType], Handler]] = {}

    def subscribe(self, event_type: Optional[EventType], handler: Handler) -> Subscription:
        """
        Register a handler.

        Args:
            event_type: Event to receive, or None for every event
            handler: Called with the SyncEvent
        """
        if event_type is not None:
            event_type = EventType(event_type)
        with self._lock:
            token = next(self._counter)
            self._subscribers[token] = (event_type, handler)
        return Subscription(self, token)

    def subscribe_all(self, handler: Handler) -> Subscription:
        return self.subscribe(None, handler)

    def _remove(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def emit(self, event_type: EventType, **data: Any) -> SyncEvent:
        """Deliver a new event to the current subscribers."""
        event = SyncEvent(type=EventType(event_type), data=data)

        with self._lock:
            handlers = [
                handler for subscribed, handler in self._subscribers.values()
                if subscribed is None or subscribed == event.type
            ]

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in '{event.type.value}' event handler: {e}")

        return event

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


class EventRecorder:
    """
    Subscriber that keeps every event it receives (diagnostics and tests).

    Usage:
        recorder = EventRecorder.attach(channel)
        recorder.of(EventType.SYNC_CONFLICT)
    """

    def __init__(self):
        self.events: List[SyncEvent] = []
        self._lock = threading.Lock()

    @classmethod
    def attach(cls, channel: EventChannel) -> EventRecorder:
        recorder = cls()
        channel.subscribe_all(recorder)
        return recorder

    def __call__(self, event: SyncEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of(self, event_type: EventType) -> List[SyncEvent]:
        with self._lock:
            return [e for e in self.events if e.type == EventType(event_type)]

    def types(self) -> List[EventType]:
        with self._lock:
            return [e.type for e in self.events]
