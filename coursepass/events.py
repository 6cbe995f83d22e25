"""
coursepass Event Infrastructure

Typed domain events, an in-memory pub/sub bus, and an append-only journal.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        EVENT INFRASTRUCTURE                          │
    │                                                                      │
    │  Domain Events          Event Bus              Event Store           │
    │  ├─ CourseCreated       ├─ Typed subscribe     ├─ Append-only        │
    │  ├─ PriceSet            ├─ Priorities          ├─ Streams per course │
    │  ├─ CourseTransferred   ├─ Filters             └─ Replay             │
    │  ├─ CourseBought        └─ Handler isolation                         │
    │  └─ CourseBred                                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The engine publishes events only after a transition has committed, so a
subscriber never hears about a change that was rolled back. Handler failures
are counted and routed to ``on_error``; they never propagate back into the
engine.

Usage
─────

    bus = EventBus()

    @bus.subscribe(CourseBought)
    def on_sale(event: CourseBought):
        print(f"{event.buyer} paid {event.price} for {event.course_id}")
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from coursepass.core import canonical_json_bytes

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all events in the system.

    Events are immutable facts representing something that happened.
    Each event has a unique ID, timestamp, and optional metadata.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Deserialize event from dictionary."""
        data = data.copy()
        data.pop("event_type", None)
        return cls(**data)

    def to_json(self) -> str:
        """Serialize event to JSON for display/transport (not for digest computation)."""
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Deterministic digest of event content."""
        return hashlib.sha256(canonical_json_bytes(self.to_dict())).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class CourseCreated(Event):
    """Emitted when a course is minted, directly or by breeding."""
    owner: str = ""
    course_id: str = ""


@dataclass
class PriceSet(Event):
    """Emitted when an owner changes the asking price. ``price`` None means not for sale."""
    owner: str = ""
    course_id: str = ""
    price: Optional[str] = None


@dataclass
class CourseTransferred(Event):
    """Emitted when an owner hands a course to another account."""
    source: str = ""
    dest: str = ""
    course_id: str = ""


@dataclass
class CourseBought(Event):
    """Emitted when a course is sold."""
    buyer: str = ""
    seller: str = ""
    course_id: str = ""
    price: str = ""


@dataclass
class CourseBred(Event):
    """Emitted after a bred child has been minted."""
    owner: str = ""
    first_parent: str = ""
    second_parent: str = ""
    course_id: str = ""


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.__name__: cls
    for cls in (CourseCreated, PriceSet, CourseTransferred, CourseBought, CourseBred)
}


# ════════════════════════════════════════════════════════════════════════════
# EVENT HANDLER
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


class EventBus:
    """
    In-memory event bus for pub/sub communication.

    Supports typed subscriptions, filters and priorities.
    Thread-safe for concurrent publishing and subscribing.

    Example:
        bus = EventBus()

        @bus.subscribe(CourseCreated, CourseBred)
        def handle_mints(event):
            print(f"Minted: {event.course_id}")

        bus.publish(CourseCreated(owner="alice", course_id="..."))
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        Args:
            event_types: Event types to subscribe to (none = all events)
            priority: Handler priority (higher = earlier)
            filter_func: Optional filter function
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers, in priority order."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = []

            for registration in self._handlers:
                if not any(isinstance(event, t) for t in registration.event_types):
                    continue
                if registration.filter_func and not registration.filter_func(event):
                    continue
                handlers_to_call.append(registration)

        # Call handlers (outside lock)
        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        """Call a handler with error handling."""
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.warning("%s", error)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        """Get event bus metrics."""
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# EVENT STORE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A persisted event record."""
    sequence_number: int
    event: Event
    stream_id: str
    version: int
    recorded_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "sequence_number": self.sequence_number,
            "event": self.event.to_dict(),
            "stream_id": self.stream_id,
            "version": self.version,
            "recorded_at": self.recorded_at,
        }


class EventStore:
    """
    Append-only event journal.

    Events are organized into streams, one per course id, which gives each
    course a replayable history of its ownership and price changes.
    """

    def __init__(self):
        self._events: List[EventRecord] = []
        self._streams: Dict[str, List[EventRecord]] = {}
        self._sequence_number = 0
        self._lock = threading.RLock()

    def append(self, stream_id: str, events: List[Event]) -> List[EventRecord]:
        """Append events to a stream, returning the recorded entries."""
        with self._lock:
            stream = self._streams.setdefault(stream_id, [])
            current_version = len(stream)

            records = []
            for event in events:
                self._sequence_number += 1
                current_version += 1
                record = EventRecord(
                    sequence_number=self._sequence_number,
                    event=event,
                    stream_id=stream_id,
                    version=current_version,
                )
                self._events.append(record)
                stream.append(record)
                records.append(record)

            return records

    def read_stream(self, stream_id: str, from_version: int = 0) -> List[Event]:
        """Read events from a stream."""
        with self._lock:
            return [r.event for r in self._streams.get(stream_id, [])[from_version:]]

    def read_all(self, from_position: int = 0, max_count: int = 1000) -> List[EventRecord]:
        """Read events from all streams."""
        with self._lock:
            return self._events[from_position:from_position + max_count]

    def get_stream_ids(self) -> List[str]:
        """Get all stream IDs."""
        with self._lock:
            return list(self._streams.keys())

    @property
    def total_events(self) -> int:
        """Total number of events."""
        with self._lock:
            return len(self._events)


__all__ = [
    "Event",
    "EventHandler",
    "EventHandlerRegistration",
    "EventHandlerError",
    "CourseCreated",
    "PriceSet",
    "CourseTransferred",
    "CourseBought",
    "CourseBred",
    "EVENT_TYPES",
    "EventBus",
    "EventRecord",
    "EventStore",
]
